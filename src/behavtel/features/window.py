"""Window feature extraction: one batch of raw events -> one :class:`WindowFeatures`.

The window's duration is derived from the data (latest minus earliest
timestamp across all three streams), not from the flush interval, so a
batch flushed early by the size trigger yields a shorter window.

Extraction is pure.  Accumulating the result into a session is a
separate step (see :class:`~behavtel.features.session.SessionAccumulator`).
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from behavtel.core.time import seconds_between
from behavtel.core.types import EventBatch, KeyEvent, PointerEvent, ScrollEvent, WindowFeatures
from behavtel.features.metrics import KEYSTROKE_PROFILE, MetricProfile, WindowContext, metric_function

logger = logging.getLogger(__name__)


def extract_window_features(
    keys: Sequence[KeyEvent] | None,
    pointer: Sequence[PointerEvent] | None,
    scroll: Sequence[ScrollEvent] | None,
    *,
    profile: MetricProfile = KEYSTROKE_PROFILE,
) -> WindowFeatures | None:
    """Compute the profile's metrics over one window of events.

    Returns ``None`` (no feature record this cycle) when any stream is
    absent or empty, when fewer than two timestamps exist across all streams, or
    when the window spans zero seconds.

    A metric that evaluates to NaN or infinity is recorded as ``0.0`` and
    logged; the rest of the record is kept.

    Args:
        keys: Keystroke events, chronological.
        pointer: Mouse move/click events, chronological.
        scroll: Scroll/focus/blur events, chronological.
        profile: Which metrics to compute.

    Returns:
        The feature record, or ``None`` for degenerate input.
    """
    # Empty streams are stored as null alongside raw batches; treat both alike.
    if not keys or not pointer or not scroll:
        return None

    timestamps = [e.timestamp for e in keys]
    timestamps.extend(e.timestamp for e in pointer)
    timestamps.extend(e.timestamp for e in scroll)
    if len(timestamps) < 2:
        return None

    window_start = min(timestamps)
    window_end = max(timestamps)
    duration = seconds_between(window_start, window_end)
    if duration == 0:
        return None

    ctx = WindowContext(
        keys=keys,
        pointer=pointer,
        scroll=scroll,
        duration=duration,
        idle_events_per_second=profile.idle_events_per_second,
    )

    metrics: dict[str, float] = {}
    for name in profile.metrics:
        value = float(metric_function(name)(ctx))
        if not math.isfinite(value):
            logger.warning("Non-finite %s=%r in window ending %s; recording 0.0", name, value, window_end)
            value = 0.0
        metrics[name] = value

    return WindowFeatures(
        metrics=metrics,
        window_start=window_start,
        window_end=window_end,
        profile=profile.name,
    )


def extract_batch_features(
    batch: EventBatch,
    *,
    profile: MetricProfile = KEYSTROKE_PROFILE,
) -> WindowFeatures | None:
    """:func:`extract_window_features` over the streams of an :class:`EventBatch`."""
    return extract_window_features(batch.keys, batch.pointer, batch.scroll, profile=profile)
