"""FastAPI ingestion service for browser-captured interaction batches.

Browsers post one batch per flush.  The service stores the raw batch,
extracts and accumulates the window for the user's current session, and
stores the window features.  Ending a session stores its summary and
starts a fresh one.

Each user has exactly one :class:`SessionAccumulator`; accumulators are
never shared across users.  Handlers run on the event loop and only the
blocking gateway calls go to worker threads, so a batch that arrives
while its user's session is being ended lands in the next session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from behavtel.core.types import EventBatch, KeyEvent, PointerEvent, ScrollEvent
from behavtel.features.metrics import BUILTIN_PROFILES, KEYSTROKE_PROFILE, MetricProfile
from behavtel.features.session import SessionAccumulator
from behavtel.persist.gateway import PersistenceError, PersistenceGateway

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class BatchRequest(BaseModel):
    user_id: str = Field(min_length=1)
    keystroke_data: list[KeyEvent] | None = None
    mouse_data: list[PointerEvent] | None = None
    scroll_data: list[ScrollEvent] | None = None

    def to_batch(self) -> EventBatch:
        return EventBatch(keys=self.keystroke_data, pointer=self.mouse_data, scroll=self.scroll_data)


class BatchResponse(BaseModel):
    features: dict[str, float] | None
    session_id: str
    total_windows: int


class SessionEndResponse(BaseModel):
    summary: dict[str, Any] | None
    session_id: str = Field(description="Identifier of the session started by the reset.")


class SessionRegistry:
    """Per-user accumulators, created lazily on first batch.

    Only touched from the event loop.  Each user also has an
    :class:`asyncio.Lock` that request handlers hold across every step
    that reads or resets that user's accumulator, including the awaited
    gateway writes in between.
    """

    def __init__(self, profile: MetricProfile) -> None:
        self._profile = profile
        self._sessions: dict[str, SessionAccumulator] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def get(self, user_id: str) -> SessionAccumulator:
        acc = self._sessions.get(user_id)
        if acc is None:
            acc = SessionAccumulator(self._profile)
            self._sessions[user_id] = acc
            logger.info("Opened session %s", acc.session_id)
        return acc

    def peek(self, user_id: str) -> SessionAccumulator | None:
        return self._sessions.get(user_id)


def create_app(
    gateway: PersistenceGateway,
    *,
    profile: MetricProfile = KEYSTROKE_PROFILE,
) -> FastAPI:
    """Build the ingestion app around *gateway*.

    Args:
        gateway: Sink for batches, window features, and summaries.
        profile: Metric profile applied to every user's windows.
    """
    app = FastAPI(title="behavtel")
    registry = SessionRegistry(profile)
    app.state.sessions = registry

    async def _persist(fn: Any, *args: Any) -> None:
        try:
            await asyncio.to_thread(fn, *args)
        except PersistenceError as exc:
            logger.error("Persistence failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    @app.get("/api/profiles")
    async def list_profiles() -> dict[str, list[str]]:
        return {name: list(p.metrics) for name, p in BUILTIN_PROFILES.items()}

    @app.post("/api/batches", response_model=BatchResponse)
    async def ingest_batch(body: BatchRequest) -> BatchResponse:
        batch = body.to_batch()
        if batch.is_empty:
            raise HTTPException(status_code=422, detail="Batch carries no events")

        async with registry.lock(body.user_id):
            await _persist(gateway.write_batch, body.user_id, batch)

            acc = registry.get(body.user_id)
            features = acc.extract(batch.keys, batch.pointer, batch.scroll)
            if features is not None:
                # Already accumulated; a 502 here would invite a double-counting retry.
                try:
                    await asyncio.to_thread(gateway.write_features, body.user_id, features)
                except PersistenceError as exc:
                    logger.error("Window features not stored: %s", exc)

            return BatchResponse(
                features=features.as_record() if features is not None else None,
                session_id=acc.session_id,
                total_windows=acc.window_count,
            )

    @app.get("/api/sessions/{user_id}/summary")
    async def session_summary(user_id: str) -> dict[str, Any]:
        acc = registry.peek(user_id)
        summary = acc.summarize() if acc is not None else None
        if summary is None:
            raise HTTPException(status_code=404, detail="No windows accumulated for this session")
        return summary.as_record()

    @app.post("/api/sessions/{user_id}/end", response_model=SessionEndResponse)
    async def end_session(user_id: str) -> SessionEndResponse:
        # Batches for this user wait until the summary is stored and the session reset.
        async with registry.lock(user_id):
            acc = registry.get(user_id)
            summary = acc.summarize()
            if summary is not None:
                await _persist(gateway.write_summary, user_id, summary)
            new_id = acc.reset()
        return SessionEndResponse(
            summary=summary.as_record() if summary is not None else None,
            session_id=new_id,
        )

    return app
