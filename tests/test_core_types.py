"""Tests for core data contracts: raw events, batches, and feature records."""

from __future__ import annotations

import datetime as dt
from typing import Any

import pytest
from pydantic import ValidationError

from behavtel.core.types import (
    EventBatch,
    KeyEvent,
    PointerEvent,
    PointerKind,
    ScrollEvent,
    ScrollKind,
    SessionSummary,
    WindowFeatures,
)


class TestRawEvents:
    def test_key_is_normalized_on_construction(self) -> None:
        ev = KeyEvent(key="ArrowLeft", timestamp=dt.datetime(2026, 3, 1))
        assert ev.key == "ARROW_LEFT"

    def test_browser_interval_alias(self) -> None:
        ev = KeyEvent.model_validate({"key": "a", "interval": 140, "timestamp": "2026-03-01T10:00:00Z"})
        assert ev.interval_ms == 140.0

    def test_aware_timestamp_becomes_naive_utc(self) -> None:
        ev = KeyEvent.model_validate({"key": "a", "timestamp": "2026-03-01T12:00:00+02:00"})
        assert ev.timestamp == dt.datetime(2026, 3, 1, 10, 0, 0)
        assert ev.timestamp.tzinfo is None

    def test_pointer_accepts_type_field(self) -> None:
        ev = PointerEvent.model_validate(
            {"type": "CLICK", "x": 4, "y": 2, "target": "BUTTON", "timestamp": "2026-03-01T10:00:00Z"}
        )
        assert ev.kind == PointerKind.CLICK
        assert ev.target == "BUTTON"

    def test_scroll_accepts_camel_case_geometry(self) -> None:
        ev = ScrollEvent.model_validate({
            "type": "SCROLL",
            "scrollY": 300,
            "scrollX": 0,
            "viewportHeight": 800,
            "pageHeight": 2200,
            "scrollPercent": 50,
            "timestamp": "2026-03-01T10:00:00Z",
        })
        assert ev.kind == ScrollKind.SCROLL
        assert ev.scroll_y == 300
        assert ev.page_height == 2200
        assert ev.scroll_percent == 50

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PointerEvent.model_validate({"type": "DRAG", "x": 0, "y": 0, "timestamp": "2026-03-01T10:00:00Z"})

    def test_events_are_frozen(self) -> None:
        ev = KeyEvent(key="a", timestamp=dt.datetime(2026, 3, 1))
        with pytest.raises(ValidationError):
            ev.key = "b"  # type: ignore[misc]


class TestEventBatch:
    def test_browser_payload(self, batch_payload: dict[str, Any]) -> None:
        batch = EventBatch.model_validate(batch_payload)
        assert batch.size == 10
        assert not batch.is_empty
        assert [k.key for k in batch.keys or []] == ["h", "i", "BACKSPACE", "SPACE"]

    def test_metadata_counts(self, batch_payload: dict[str, Any]) -> None:
        batch = EventBatch.model_validate(batch_payload)
        assert batch.metadata() == {
            "keystroke_count": 4,
            "mouse_count": 4,
            "scroll_count": 2,
            "batch_size": 10,
        }

    def test_null_streams(self) -> None:
        batch = EventBatch.model_validate({"keystroke_data": None, "mouse_data": None, "scroll_data": None})
        assert batch.is_empty
        assert batch.metadata()["batch_size"] == 0

    def test_json_round_trip_uses_field_names(self, batch_payload: dict[str, Any]) -> None:
        batch = EventBatch.model_validate(batch_payload)
        again = EventBatch.model_validate_json(batch.model_dump_json())
        assert again == batch


class TestWindowFeatures:
    def test_mapping_access(self) -> None:
        wf = WindowFeatures(
            metrics={"typing_speed": 2.0, "idle_ratio": 0.1},
            window_start=dt.datetime(2026, 3, 1, 10, 0),
            window_end=dt.datetime(2026, 3, 1, 10, 0, 30),
            profile="keystroke",
        )
        assert wf["typing_speed"] == 2.0
        assert "idle_ratio" in wf
        assert "focus_ratio" not in wf
        assert wf.get("focus_ratio") is None
        assert len(wf) == 2
        assert dict(wf.items()) == {"typing_speed": 2.0, "idle_ratio": 0.1}

    def test_as_record_is_a_copy(self) -> None:
        wf = WindowFeatures(
            metrics={"typing_speed": 2.0},
            window_start=dt.datetime(2026, 3, 1, 10, 0),
            window_end=dt.datetime(2026, 3, 1, 10, 0, 30),
            profile="keystroke",
        )
        record = wf.as_record()
        record["typing_speed"] = 99.0
        assert wf["typing_speed"] == 2.0


class TestSessionSummary:
    def test_requires_at_least_one_window(self) -> None:
        with pytest.raises(ValidationError):
            SessionSummary(
                session_id="s", total_windows=0, generated_at=dt.datetime(2026, 3, 1), metrics={},
            )
