"""Tests for window feature extraction.

Covers:
- Degenerate-input guards (absent/empty stream, single instant)
- Window duration derived from the union of timestamps
- Mouse speed mean/variance, keystroke intervals, backspace ratio
- Idle ratio bounds and focus ratio pairing
- Profile selection and non-finite metric handling
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

import pytest

from behavtel.core.types import (
    EventBatch,
    KeyEvent,
    PointerEvent,
    PointerKind,
    ScrollEvent,
    ScrollKind,
)
from behavtel.features import metrics as metrics_module
from behavtel.features.metrics import FOCUS_PROFILE, KEYSTROKE_PROFILE, MetricProfile
from behavtel.features.window import extract_batch_features, extract_window_features

T0 = dt.datetime(2026, 3, 1, 10, 0, 0)


def _at(seconds: float) -> dt.datetime:
    return T0 + dt.timedelta(seconds=seconds)


def _key(seconds: float, key: str = "a") -> KeyEvent:
    return KeyEvent(key=key, timestamp=_at(seconds))


def _move(seconds: float, x: float, y: float) -> PointerEvent:
    return PointerEvent(kind=PointerKind.MOVE, x=x, y=y, timestamp=_at(seconds))


def _click(seconds: float) -> PointerEvent:
    return PointerEvent(kind=PointerKind.CLICK, x=0, y=0, target="A", timestamp=_at(seconds))


def _scroll(seconds: float, kind: ScrollKind = ScrollKind.SCROLL) -> ScrollEvent:
    return ScrollEvent(kind=kind, timestamp=_at(seconds))


class TestDegenerateInput:
    @pytest.mark.parametrize("missing", ["keys", "pointer", "scroll"])
    def test_absent_stream_returns_none(self, missing: str) -> None:
        streams: dict[str, Any] = {
            "keys": [_key(0)],
            "pointer": [_move(1, 0, 0)],
            "scroll": [_scroll(2)],
        }
        streams[missing] = None
        assert extract_window_features(streams["keys"], streams["pointer"], streams["scroll"]) is None

    @pytest.mark.parametrize("empty", ["keys", "pointer", "scroll"])
    def test_empty_stream_returns_none(self, empty: str) -> None:
        streams: dict[str, Any] = {
            "keys": [_key(0), _key(1)],
            "pointer": [_move(1, 0, 0), _move(2, 5, 5)],
            "scroll": [_scroll(2), _scroll(3)],
        }
        streams[empty] = []
        assert extract_window_features(streams["keys"], streams["pointer"], streams["scroll"]) is None

    def test_zero_duration_returns_none(self) -> None:
        assert extract_window_features([_key(5)], [_move(5, 1, 1)], [_scroll(5)]) is None

    def test_batch_with_null_streams_returns_none(self) -> None:
        assert extract_batch_features(EventBatch(keys=[_key(0), _key(1)])) is None


class TestWindowDuration:
    def test_rates_use_span_of_all_streams(self) -> None:
        """50 events evenly spread across exactly 10 seconds."""
        keys = [_key(i * 0.5) for i in range(20)]
        moves = [_move(i * 0.5 + 0.5, i, i) for i in range(20)]
        scrolls = [_scroll(float(i)) for i in range(10)]

        features = extract_window_features(keys, moves, scrolls)
        assert features is not None
        assert features["typing_speed"] == 2.0
        assert features["scroll_frequency"] == 1.0
        assert features.window_start == _at(0)
        assert features.window_end == _at(10)

    def test_streams_need_not_be_mutually_ordered(self) -> None:
        """The earliest event sits in the last stream, the latest in the first."""
        features = extract_window_features(
            [_key(3), _key(8)],
            [_move(1, 0, 0)],
            [_scroll(-2)],
            profile=FOCUS_PROFILE,
        )
        assert features is not None
        assert features["window_duration"] == 10.0
        assert features["typing_speed"] == pytest.approx(0.2)


class TestMouseMetrics:
    def test_single_pair_speed(self) -> None:
        features = extract_window_features([_key(0)], [_move(0, 0, 0), _move(1, 3, 4)], [_scroll(0)])
        assert features is not None
        assert features["avg_mouse_speed"] == 5.0
        assert features["mouse_move_variance"] == 0.0

    def test_zero_elapsed_pairs_are_skipped(self) -> None:
        moves = [_move(0, 0, 0), _move(1, 3, 4), _move(1, 3, 4), _move(2, 9, 12)]
        features = extract_window_features([_key(0)], moves, [_scroll(0)])
        assert features is not None
        assert features["avg_mouse_speed"] == 7.5  # mean of 5 and 10
        assert features["mouse_move_variance"] == 6.25

    def test_clicks_do_not_contribute_speed_samples(self) -> None:
        pointer = [_move(0, 0, 0), _click(0.5), _move(1, 3, 4)]
        features = extract_window_features([_key(0)], pointer, [_scroll(0)])
        assert features is not None
        assert features["avg_mouse_speed"] == 5.0

    def test_fewer_than_two_moves_is_zero(self) -> None:
        features = extract_window_features([_key(0)], [_click(1), _move(2, 7, 7)], [_scroll(0)])
        assert features is not None
        assert features["avg_mouse_speed"] == 0.0
        assert features["mouse_move_variance"] == 0.0


class TestKeyboardMetrics:
    def test_backspace_ratio_matches_normalized_label(self) -> None:
        keys = [_key(0, "a"), _key(1, "Backspace"), _key(2, "b"), _key(3, "BACKSPACE")]
        features = extract_window_features(keys, [_move(0, 0, 0)], [_scroll(0)])
        assert features is not None
        assert features["backspace_ratio"] == 0.5

    def test_keystroke_intervals_skip_zero_deltas(self) -> None:
        keys = [_key(0), _key(1), _key(1), _key(3)]
        features = extract_window_features(keys, [_move(0, 0, 0)], [_scroll(0)])
        assert features is not None
        assert features["avg_keystroke_interval"] == 1.5
        assert features["keystroke_variance"] == 0.25

    def test_single_key_has_zero_interval_stats(self) -> None:
        features = extract_window_features([_key(0)], [_move(2, 0, 0)], [_scroll(1)])
        assert features is not None
        assert features["avg_keystroke_interval"] == 0.0
        assert features["keystroke_variance"] == 0.0


class TestIdleRatio:
    def test_dense_window_clamps_to_zero(self) -> None:
        keys = [_key(i / 100) for i in range(101)]
        features = extract_window_features(keys, [_move(0, 0, 0)], [_scroll(0)])
        assert features is not None
        assert features["idle_ratio"] == 0.0

    def test_sparse_window(self) -> None:
        features = extract_window_features([_key(0)], [_move(5, 0, 0)], [_scroll(10)])
        assert features is not None
        assert features["idle_ratio"] == pytest.approx(1 - 3 / 50)

    def test_focus_and_blur_are_not_activity(self) -> None:
        scroll = [_scroll(0, ScrollKind.FOCUS), _scroll(5, ScrollKind.BLUR), _scroll(10, ScrollKind.FOCUS)]
        features = extract_window_features([_key(0)], [_move(0, 0, 0)], scroll)
        assert features is not None
        assert features["idle_ratio"] == pytest.approx(1 - 2 / 50)

    @pytest.mark.parametrize("n_events", [1, 10, 50, 500])
    def test_always_within_unit_interval(self, n_events: int) -> None:
        keys = [_key(i * 0.01) for i in range(n_events)]
        features = extract_window_features(keys, [_move(1, 0, 0)], [_scroll(0.5)])
        assert features is not None
        assert 0.0 <= features["idle_ratio"] <= 1.0

    def test_baseline_comes_from_profile(self) -> None:
        profile = KEYSTROKE_PROFILE.model_copy(update={"idle_events_per_second": 1.0})
        features = extract_window_features([_key(0)], [_move(5, 0, 0)], [_scroll(10)], profile=profile)
        assert features is not None
        assert features["idle_ratio"] == pytest.approx(1 - 3 / 10)


class TestFocusRatio:
    def test_pairs_each_focus_with_next_event(self) -> None:
        scroll = [
            _scroll(0, ScrollKind.FOCUS),
            _scroll(2, ScrollKind.SCROLL),
            _scroll(3, ScrollKind.BLUR),
            _scroll(6, ScrollKind.FOCUS),
            _scroll(10, ScrollKind.BLUR),
        ]
        features = extract_window_features([_key(0)], [_move(0, 0, 0)], scroll, profile=FOCUS_PROFILE)
        assert features is not None
        assert features["focus_ratio"] == pytest.approx(0.6)

    def test_trailing_focus_not_counted(self) -> None:
        scroll = [_scroll(0, ScrollKind.BLUR), _scroll(8, ScrollKind.FOCUS)]
        features = extract_window_features([_key(0)], [_move(10, 0, 0)], scroll, profile=FOCUS_PROFILE)
        assert features is not None
        assert features["focus_ratio"] == 0.0


class TestProfiles:
    def test_keystroke_profile_metric_names(self, batch_payload: dict[str, Any]) -> None:
        batch = EventBatch.model_validate(batch_payload)
        features = extract_batch_features(batch, profile=KEYSTROKE_PROFILE)
        assert features is not None
        assert list(features.keys()) == list(KEYSTROKE_PROFILE.metrics)
        assert "focus_ratio" not in features
        assert features.profile == "keystroke"

    def test_focus_profile_metric_names(self, batch_payload: dict[str, Any]) -> None:
        batch = EventBatch.model_validate(batch_payload)
        features = extract_batch_features(batch, profile=FOCUS_PROFILE)
        assert features is not None
        assert set(features.keys()) == set(FOCUS_PROFILE.metrics)
        assert features["window_duration"] == 4.0
        assert "keystroke_variance" not in features

    def test_browser_batch_values(self, batch_payload: dict[str, Any]) -> None:
        features = extract_batch_features(EventBatch.model_validate(batch_payload))
        assert features is not None
        assert features.as_record() == pytest.approx({
            "typing_speed": 1.0,
            "backspace_ratio": 0.25,
            "avg_keystroke_interval": 2 / 3,
            "keystroke_variance": 1 / 18,
            "avg_mouse_speed": 7.5,
            "mouse_move_variance": 6.25,
            "scroll_frequency": 0.5,
            "idle_ratio": 0.5,
        })


class TestNonFiniteMetrics:
    def test_nan_metric_recorded_as_zero(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture,
    ) -> None:
        monkeypatch.setitem(metrics_module._REGISTRY, "always_nan", lambda ctx: float("nan"))
        profile = MetricProfile(name="nan-test", metrics=("typing_speed", "always_nan"))

        with caplog.at_level(logging.WARNING, logger="behavtel.features.window"):
            features = extract_window_features([_key(0)], [_move(1, 0, 0)], [_scroll(2)], profile=profile)

        assert features is not None
        assert features["always_nan"] == 0.0
        assert features["typing_speed"] == 0.5
        assert "always_nan" in caplog.text
