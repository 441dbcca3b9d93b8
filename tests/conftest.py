"""Shared fixtures for the behavtel test suite."""

from __future__ import annotations

import datetime as dt
from typing import Any

import pytest


@pytest.fixture()
def t0() -> dt.datetime:
    return dt.datetime(2026, 3, 1, 10, 0, 0)


@pytest.fixture()
def batch_payload() -> dict[str, Any]:
    """One browser-shaped batch spanning 4 seconds.

    4 keys (one backspace), 3 mouse moves covering 5 px then 10 px per
    second, one click, and two scrolls.
    """
    return {
        "keystroke_data": [
            {"key": "h", "timestamp": "2026-03-01T10:00:00.000Z"},
            {"key": "i", "interval": 500, "timestamp": "2026-03-01T10:00:00.500Z"},
            {"key": "Backspace", "interval": 500, "timestamp": "2026-03-01T10:00:01.000Z"},
            {"key": " ", "interval": 1000, "timestamp": "2026-03-01T10:00:02.000Z"},
        ],
        "mouse_data": [
            {"type": "MOVE", "x": 0, "y": 0, "timestamp": "2026-03-01T10:00:00.000Z"},
            {"type": "MOVE", "x": 3, "y": 4, "timestamp": "2026-03-01T10:00:01.000Z"},
            {"type": "MOVE", "x": 9, "y": 12, "timestamp": "2026-03-01T10:00:02.000Z"},
            {"type": "CLICK", "x": 9, "y": 12, "target": "BUTTON", "timestamp": "2026-03-01T10:00:03.000Z"},
        ],
        "scroll_data": [
            {"type": "SCROLL", "scrollY": 120, "timestamp": "2026-03-01T10:00:01.000Z"},
            {"type": "SCROLL", "scrollY": 480, "timestamp": "2026-03-01T10:00:04.000Z"},
        ],
    }
