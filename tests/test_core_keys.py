"""Tests for keyboard label normalization."""

from __future__ import annotations

import pytest

from behavtel.core.keys import normalize_key


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("a", "a"),
        ("A", "A"),
        ("7", "7"),
        (" ", "SPACE"),
        ("Spacebar", "SPACE"),
        ("Enter", "ENTER"),
        ("Backspace", "BACKSPACE"),
        ("Tab", "TAB"),
        ("Escape", "ESCAPE"),
        ("Esc", "ESCAPE"),
        ("ArrowUp", "ARROW_UP"),
        ("ArrowDown", "ARROW_DOWN"),
        ("PageDown", "PAGE_DOWN"),
        ("F12", "F12"),
        ("", "UNIDENTIFIED"),
    ],
)
def test_normalize_key(raw: str, expected: str) -> None:
    assert normalize_key(raw) == expected


@pytest.mark.parametrize("raw", ["ArrowLeft", " ", "Backspace", "x", "CapsLock"])
def test_normalization_is_idempotent(raw: str) -> None:
    once = normalize_key(raw)
    assert normalize_key(once) == once
