"""Timestamp normalization and elapsed-time helpers.

All event timestamps are stored as naive UTC datetimes.  Timezone-aware
inputs are converted to UTC first so that events captured in different
offsets compare correctly.
"""

from __future__ import annotations

from datetime import datetime, timezone


def to_naive_utc(ts: datetime) -> datetime:
    """Return *ts* as a naive UTC datetime.

    Args:
        ts: Naive (assumed UTC) or timezone-aware datetime.

    Returns:
        The same instant with ``tzinfo`` stripped.
    """
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None)


def seconds_between(start: datetime, end: datetime) -> float:
    """Absolute elapsed seconds between two naive-UTC timestamps."""
    return abs((end - start).total_seconds())


def epoch_millis(ts: datetime) -> int:
    """Milliseconds since the Unix epoch for a naive-UTC datetime."""
    return int(ts.replace(tzinfo=timezone.utc).timestamp() * 1000)
