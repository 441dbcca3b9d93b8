"""In-memory capture buffers for keyboard, pointer, and scroll/focus streams.

Events are timestamped on arrival and appended to their stream in
capture order, so each stream is chronological.  Mouse moves are
throttled.  :meth:`EventBuffer.drain` hands the whole buffer over as one
:class:`~behavtel.core.types.EventBatch` and clears it; a batch whose
persistence failed stays with the monitor (see :mod:`behavtel.capture.monitor`).
"""

from __future__ import annotations

from datetime import datetime, timedelta

from behavtel.core.defaults import DEFAULT_BATCH_SIZE, DEFAULT_MOUSE_THROTTLE_MS
from behavtel.core.time import to_naive_utc, utc_now
from behavtel.core.types import (
    EventBatch,
    KeyEvent,
    PointerEvent,
    PointerKind,
    ScrollEvent,
    ScrollKind,
)


class EventBuffer:
    """Accumulates raw events until a batch boundary is reached.

    Args:
        batch_size: Total buffered events at which :meth:`needs_flush`
            turns true.
        mouse_throttle_ms: Minimum spacing between recorded mouse moves.
    """

    def __init__(
        self,
        batch_size: int = DEFAULT_BATCH_SIZE,
        mouse_throttle_ms: int = DEFAULT_MOUSE_THROTTLE_MS,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._batch_size = batch_size
        self._throttle = timedelta(milliseconds=mouse_throttle_ms)
        self._keys: list[KeyEvent] = []
        self._pointer: list[PointerEvent] = []
        self._scroll: list[ScrollEvent] = []
        self._last_key_ts: datetime | None = None
        self._last_move_ts: datetime | None = None

    # -- recording -------------------------------------------------------------

    def record_key(self, key: str, timestamp: datetime | None = None) -> KeyEvent:
        ts = _stamp(timestamp)
        interval = None
        if self._last_key_ts is not None:
            interval = max(0.0, (ts - self._last_key_ts).total_seconds() * 1000)
        event = KeyEvent(key=key, timestamp=ts, interval_ms=interval)
        self._keys.append(event)
        self._last_key_ts = ts
        return event

    def record_move(self, x: float, y: float, timestamp: datetime | None = None) -> PointerEvent | None:
        """Record a mouse move unless it falls inside the throttle interval.

        Returns:
            The recorded event, or ``None`` if it was throttled.
        """
        ts = _stamp(timestamp)
        if self._last_move_ts is not None and ts - self._last_move_ts < self._throttle:
            return None
        event = PointerEvent(kind=PointerKind.MOVE, x=x, y=y, timestamp=ts)
        self._pointer.append(event)
        self._last_move_ts = ts
        return event

    def record_click(
        self,
        x: float,
        y: float,
        target: str | None = None,
        timestamp: datetime | None = None,
    ) -> PointerEvent:
        event = PointerEvent(kind=PointerKind.CLICK, x=x, y=y, target=target, timestamp=_stamp(timestamp))
        self._pointer.append(event)
        return event

    def record_scroll(
        self,
        scroll_y: float,
        scroll_x: float = 0.0,
        *,
        viewport_height: float | None = None,
        page_height: float | None = None,
        timestamp: datetime | None = None,
    ) -> ScrollEvent:
        percent = None
        if viewport_height is not None and page_height:
            percent = min(100.0, (scroll_y + viewport_height) / page_height * 100)
        event = ScrollEvent(
            kind=ScrollKind.SCROLL,
            scroll_y=scroll_y,
            scroll_x=scroll_x,
            viewport_height=viewport_height,
            page_height=page_height,
            scroll_percent=percent,
            timestamp=_stamp(timestamp),
        )
        self._scroll.append(event)
        return event

    def record_focus(self, focused: bool, timestamp: datetime | None = None) -> ScrollEvent:
        kind = ScrollKind.FOCUS if focused else ScrollKind.BLUR
        event = ScrollEvent(kind=kind, timestamp=_stamp(timestamp))
        self._scroll.append(event)
        return event

    # -- batching --------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._keys) + len(self._pointer) + len(self._scroll)

    def needs_flush(self) -> bool:
        return self.size >= self._batch_size

    def drain(self) -> EventBatch:
        """Return everything buffered as one batch and clear the buffer.

        Streams that captured nothing are ``None`` in the batch.
        """
        batch = EventBatch(
            keys=self._keys or None,
            pointer=self._pointer or None,
            scroll=self._scroll or None,
        )
        self._keys, self._pointer, self._scroll = [], [], []
        return batch

    def load(self, batch: EventBatch) -> None:
        """Append already-captured events, e.g. when replaying stored batches.

        No throttling is applied; *batch* streams must be chronological and
        not older than what is already buffered.
        """
        self._keys.extend(batch.keys or ())
        self._pointer.extend(batch.pointer or ())
        self._scroll.extend(batch.scroll or ())
        if batch.keys:
            self._last_key_ts = batch.keys[-1].timestamp
        moves = [e for e in batch.pointer or () if e.kind == PointerKind.MOVE]
        if moves:
            self._last_move_ts = moves[-1].timestamp


def _stamp(timestamp: datetime | None) -> datetime:
    return utc_now() if timestamp is None else to_naive_utc(timestamp)
