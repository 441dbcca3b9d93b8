"""Flush orchestration: capture buffer -> feature engine -> persistence gateway.

:class:`BehaviorMonitor` is the caller the feature engine is designed
for.  Each flush drains the buffer, extracts and accumulates the window
synchronously, and only then awaits the (blocking, possibly slow)
gateway in a worker thread.  Batch clearing therefore never depends on
network I/O.

Flush triggers:

* size -- a ``record_*`` call returns ``True`` once the buffer reaches
  its batch size; the caller schedules :meth:`BehaviorMonitor.flush`.
* time -- :meth:`BehaviorMonitor.run` flushes every ``flush_interval``
  seconds.
* tab hide -- the caller awaits :meth:`BehaviorMonitor.flush`; this never
  resets the session.

Only :meth:`BehaviorMonitor.finalize` (explicit sign-out) ends a session.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from behavtel.capture.buffer import EventBuffer
from behavtel.core.config import MonitorConfig
from behavtel.core.defaults import DEFAULT_FLUSH_INTERVAL_SECONDS
from behavtel.core.types import EventBatch, SessionSummary, WindowFeatures
from behavtel.features.metrics import KEYSTROKE_PROFILE, MetricProfile, resolve_profile
from behavtel.features.session import SessionAccumulator
from behavtel.persist.gateway import PersistenceError, PersistenceGateway

logger = logging.getLogger(__name__)


def configured_profile(config: MonitorConfig) -> MetricProfile:
    """Resolve the profile named in *config*, with its idle baseline applied."""
    profile = resolve_profile(config.profile)
    if profile.idle_events_per_second != config.idle_events_per_second:
        profile = profile.model_copy(update={"idle_events_per_second": config.idle_events_per_second})
    return profile


class BehaviorMonitor:
    """Owns one user's capture buffer and session accumulator.

    Raw batches whose write fails are kept and re-sent, in order, ahead
    of the next batch.  They are never re-extracted, so a window is
    accumulated exactly once.

    Args:
        gateway: Sink for batches, window features, and summaries.
        user_id: Authenticated user; ``None`` drops batches unsent.
        profile: Metric profile for window extraction.
        buffer: Capture buffer (a default-sized one is created if omitted).
        flush_interval: Seconds between time-based flushes in :meth:`run`.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        user_id: str | None,
        *,
        profile: MetricProfile = KEYSTROKE_PROFILE,
        buffer: EventBuffer | None = None,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
    ) -> None:
        self._gateway = gateway
        self.user_id = user_id
        self._buffer = buffer or EventBuffer()
        self._accumulator = SessionAccumulator(profile)
        self._flush_interval = flush_interval
        self._unsent: list[EventBatch] = []
        self._sending = False

    @classmethod
    def from_config(
        cls,
        gateway: PersistenceGateway,
        user_id: str | None,
        config: MonitorConfig,
        *,
        profile: MetricProfile | None = None,
    ) -> BehaviorMonitor:
        """Build a monitor from the settings stored in *config*.

        Batch size, mouse throttle, flush interval and profile all come from
        *config*; an explicit *profile* wins over the configured one.

        Raises:
            ValueError: If the configured profile cannot be resolved.
        """
        return cls(
            gateway,
            user_id,
            profile=profile or configured_profile(config),
            buffer=EventBuffer(batch_size=config.batch_size, mouse_throttle_ms=config.mouse_throttle_ms),
            flush_interval=config.flush_interval_seconds,
        )

    @property
    def buffer(self) -> EventBuffer:
        return self._buffer

    @property
    def accumulator(self) -> SessionAccumulator:
        return self._accumulator

    @property
    def flush_interval(self) -> float:
        return self._flush_interval

    @property
    def unsent_batches(self) -> int:
        return len(self._unsent)

    # -- capture ---------------------------------------------------------------

    def record_key(self, key: str, timestamp: datetime | None = None) -> bool:
        self._buffer.record_key(key, timestamp)
        return self._buffer.needs_flush()

    def record_move(self, x: float, y: float, timestamp: datetime | None = None) -> bool:
        self._buffer.record_move(x, y, timestamp)
        return self._buffer.needs_flush()

    def record_click(
        self, x: float, y: float, target: str | None = None, timestamp: datetime | None = None,
    ) -> bool:
        self._buffer.record_click(x, y, target, timestamp)
        return self._buffer.needs_flush()

    def record_scroll(
        self,
        scroll_y: float,
        scroll_x: float = 0.0,
        *,
        viewport_height: float | None = None,
        page_height: float | None = None,
        timestamp: datetime | None = None,
    ) -> bool:
        self._buffer.record_scroll(
            scroll_y, scroll_x, viewport_height=viewport_height, page_height=page_height, timestamp=timestamp,
        )
        return self._buffer.needs_flush()

    def record_focus(self, focused: bool, timestamp: datetime | None = None) -> bool:
        self._buffer.record_focus(focused, timestamp)
        return self._buffer.needs_flush()

    # -- flushing --------------------------------------------------------------

    async def flush(self) -> WindowFeatures | None:
        """Drain the buffer, accumulate its window, and persist.

        No-op while another flush is in flight or when nothing is buffered
        or pending.

        Returns:
            The window's feature record, or ``None`` if no record was
            produced this cycle.
        """
        if self._sending or (self._buffer.size == 0 and not self._unsent):
            return None
        self._sending = True
        try:
            features = None
            if self._buffer.size:
                batch = self._buffer.drain()
                features = self._accumulator.extract(batch.keys, batch.pointer, batch.scroll)
                self._unsent.append(batch)

            if self.user_id is None:
                logger.warning("No authenticated user; dropping %d unsent batch(es)", len(self._unsent))
                self._unsent.clear()
                return features

            await self._send_pending()
            if features is not None:
                try:
                    await asyncio.to_thread(self._gateway.write_features, self.user_id, features)
                except PersistenceError as exc:
                    logger.error("Window features not stored: %s", exc)
            return features
        finally:
            self._sending = False

    async def _send_pending(self) -> None:
        while self._unsent:
            batch = self._unsent[0]
            try:
                await asyncio.to_thread(self._gateway.write_batch, self.user_id, batch)
            except PersistenceError as exc:
                logger.error("Behavior batch insert failed, keeping %d for retry: %s", len(self._unsent), exc)
                return
            self._unsent.pop(0)
            logger.info("Behavior batch stored (%d events)", batch.size)

    async def run(self) -> None:
        """Flush every ``flush_interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(self._flush_interval)
            await self.flush()

    # -- session end -----------------------------------------------------------

    async def finalize(self) -> SessionSummary | None:
        """End the session: final flush, persist the summary, reset.

        An empty session writes nothing and is still reset.  If the summary
        cannot be stored the :class:`PersistenceError` propagates and the
        session is left intact so finalization can be retried.

        Returns:
            The summary that was stored, or ``None`` for an empty session.
        """
        await self.flush()
        summary = self._accumulator.summarize()
        if summary is not None and self.user_id is not None:
            await asyncio.to_thread(self._gateway.write_summary, self.user_id, summary)
            logger.info("Session %s summary stored (%d windows)", summary.session_id, summary.total_windows)
        self._accumulator.reset()
        return summary
