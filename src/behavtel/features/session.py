"""Session accumulation and lifecycle.

A *session* spans every window captured for one user between two
explicit finalizations.  :class:`SessionAccumulator` keeps running sums
of each window metric and produces a per-session mean on demand.

Lifecycle::

    EMPTY --accumulate--> ACCUMULATING --accumulate--> ACCUMULATING
      ^                                                     |
      +------------------------reset------------------------+

``summarize`` is read-only and may be called in either state; it
returns ``None`` while ``EMPTY``.  ``reset`` is reserved for explicit
session boundaries (sign-out); transient flushes and tab-hide must
leave the accumulation intact.

Accumulators share no state, so per-tab or per-user sessions each own
their own instance.
"""

from __future__ import annotations

import logging
import math
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from enum import StrEnum
from typing import Mapping, Sequence

from behavtel.core.defaults import SESSION_ID_PREFIX, SESSION_ID_SUFFIX_LENGTH, SUMMARY_PRECISION
from behavtel.core.time import epoch_millis, utc_now
from behavtel.core.types import KeyEvent, PointerEvent, ScrollEvent, SessionSummary, WindowFeatures
from behavtel.features.metrics import KEYSTROKE_PROFILE, MetricProfile
from behavtel.features.window import extract_window_features

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_QUANTUM = Decimal(1).scaleb(-SUMMARY_PRECISION)
# Enough significant digits to quantize any finite double (max ~1.8e308).
_ROUNDING_PREC = 340


def new_session_id(now: datetime | None = None) -> str:
    """Generate ``session_<epoch-ms>_<9 base-36 chars>``.

    Unique with overwhelming probability; not meant to be unguessable.
    """
    millis = epoch_millis(now or utc_now())
    suffix = "".join(secrets.choice(_BASE36) for _ in range(SESSION_ID_SUFFIX_LENGTH))
    return f"{SESSION_ID_PREFIX}{millis}_{suffix}"


def round_fixed(value: float, digits: int = SUMMARY_PRECISION) -> float:
    """Round *value* half-up on its exact decimal expansion.

    Unlike :func:`round`, ties are resolved away from zero, which keeps
    summaries consistent with fixed-point formatted values written by
    earlier collectors.
    """
    if not math.isfinite(value):
        return value
    quantum = _QUANTUM if digits == SUMMARY_PRECISION else Decimal(1).scaleb(-digits)
    with localcontext() as ctx:
        ctx.prec = _ROUNDING_PREC
        return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


class SessionState(StrEnum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"


@dataclass
class SessionStats:
    """Running totals for one session."""

    window_count: int = 0
    sums: dict[str, float] = field(default_factory=dict)


class SessionAccumulator:
    """Owns one session's running metric sums and identifier.

    Args:
        profile: Metric profile used by :meth:`extract`.
        session_id: Initial identifier; generated when omitted.
    """

    def __init__(
        self,
        profile: MetricProfile = KEYSTROKE_PROFILE,
        *,
        session_id: str | None = None,
    ) -> None:
        self._profile = profile
        self._stats = SessionStats()
        self._session_id = session_id or new_session_id()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def profile(self) -> MetricProfile:
        return self._profile

    @property
    def window_count(self) -> int:
        return self._stats.window_count

    @property
    def state(self) -> SessionState:
        if self._stats.window_count == 0:
            return SessionState.EMPTY
        return SessionState.ACCUMULATING

    def sums(self) -> dict[str, float]:
        """Copy of the running per-metric totals."""
        return dict(self._stats.sums)

    def accumulate(self, features: WindowFeatures | Mapping[str, float]) -> None:
        """Add one window's metrics to the running sums.

        Metric names seen for the first time start from zero; names
        missing from *features* simply do not advance.  The window count
        grows by exactly one per call.
        """
        metrics = features.metrics if isinstance(features, WindowFeatures) else features
        sums = self._stats.sums
        for name, value in metrics.items():
            sums[name] = sums.get(name, 0.0) + value
        self._stats.window_count += 1

    def extract(
        self,
        keys: Sequence[KeyEvent] | None,
        pointer: Sequence[PointerEvent] | None,
        scroll: Sequence[ScrollEvent] | None,
    ) -> WindowFeatures | None:
        """Extract one window with this session's profile and accumulate it.

        Returns the feature record, or ``None`` (nothing accumulated) for
        degenerate input.
        """
        features = extract_window_features(keys, pointer, scroll, profile=self._profile)
        if features is not None:
            self.accumulate(features)
        return features

    def summarize(self, now: datetime | None = None) -> SessionSummary | None:
        """Mean of every accumulated metric, or ``None`` if nothing was accumulated.

        Does not modify the accumulator.
        """
        count = self._stats.window_count
        if count == 0:
            return None
        means = {name: round_fixed(total / count) for name, total in self._stats.sums.items()}
        return SessionSummary(
            session_id=self._session_id,
            total_windows=count,
            generated_at=now or utc_now(),
            metrics=means,
        )

    def reset(self) -> str:
        """Start a new session: zero the totals and issue a new identifier.

        Returns:
            The new session identifier.
        """
        previous = self._session_id
        fresh_id = new_session_id()
        while fresh_id == previous:
            fresh_id = new_session_id()
        self._stats, self._session_id = SessionStats(), fresh_id
        logger.info("Session %s reset; new session %s", previous, fresh_id)
        return fresh_id
