"""Core data contracts: raw interaction events, window features, and session summaries."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Iterator

from pydantic import AliasChoices, BaseModel, Field, field_validator

from behavtel.core.keys import normalize_key
from behavtel.core.time import to_naive_utc


class PointerKind(StrEnum):
    MOVE = "MOVE"
    CLICK = "CLICK"


class ScrollKind(StrEnum):
    """Kinds carried by the scroll/focus stream.

    Only ``SCROLL`` counts as activity; ``FOCUS`` and ``BLUR`` delimit
    the periods the page held input focus.
    """

    SCROLL = "SCROLL"
    FOCUS = "FOCUS"
    BLUR = "BLUR"


class _TimestampedEvent(BaseModel, frozen=True, populate_by_name=True):
    timestamp: datetime = Field(description="Capture instant (normalized to naive UTC).")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class KeyEvent(_TimestampedEvent, frozen=True):
    """One keystroke.  ``key`` is always a normalized label (see :mod:`behavtel.core.keys`)."""

    key: str = Field(description="Normalized key label, e.g. 'a', 'SPACE', 'BACKSPACE'.")
    interval_ms: float | None = Field(
        default=None,
        ge=0.0,
        validation_alias=AliasChoices("interval_ms", "interval"),
        description="Milliseconds since the previous keystroke, as recorded at capture.",
    )

    @field_validator("key")
    @classmethod
    def _normalize_key(cls, value: str) -> str:
        return normalize_key(value)


class PointerEvent(_TimestampedEvent, frozen=True):
    """A mouse move or click at screen coordinates ``(x, y)``."""

    kind: PointerKind = Field(validation_alias=AliasChoices("kind", "type"))
    x: float
    y: float
    target: str | None = Field(default=None, description="Element tag of a CLICK target.")


class ScrollEvent(_TimestampedEvent, frozen=True):
    """A scroll, focus, or blur event.  Geometry fields are only set for ``SCROLL``."""

    kind: ScrollKind = Field(validation_alias=AliasChoices("kind", "type"))
    scroll_y: float | None = Field(default=None, validation_alias=AliasChoices("scroll_y", "scrollY"))
    scroll_x: float | None = Field(default=None, validation_alias=AliasChoices("scroll_x", "scrollX"))
    viewport_height: float | None = Field(
        default=None, validation_alias=AliasChoices("viewport_height", "viewportHeight"),
    )
    page_height: float | None = Field(
        default=None, validation_alias=AliasChoices("page_height", "pageHeight"),
    )
    scroll_percent: float | None = Field(
        default=None, validation_alias=AliasChoices("scroll_percent", "scrollPercent"),
    )


class EventBatch(BaseModel, frozen=True):
    """One flush worth of captured events.

    A stream that captured nothing in this window may be ``None``
    (absent), which feature extraction treats as degenerate input.
    """

    keys: list[KeyEvent] | None = Field(
        default=None, validation_alias=AliasChoices("keys", "keystroke_data"),
    )
    pointer: list[PointerEvent] | None = Field(
        default=None, validation_alias=AliasChoices("pointer", "mouse_data"),
    )
    scroll: list[ScrollEvent] | None = Field(
        default=None, validation_alias=AliasChoices("scroll", "scroll_data"),
    )

    @property
    def size(self) -> int:
        return len(self.keys or ()) + len(self.pointer or ()) + len(self.scroll or ())

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    def metadata(self) -> dict[str, int]:
        """Per-stream counts stored next to the raw batch."""
        return {
            "keystroke_count": len(self.keys or ()),
            "mouse_count": len(self.pointer or ()),
            "scroll_count": len(self.scroll or ()),
            "batch_size": self.size,
        }


class WindowFeatures(BaseModel, frozen=True):
    """Behavioral metrics computed over one window of events.

    Supports read-only mapping access (``features["typing_speed"]``,
    ``"idle_ratio" in features``) over the metric names.  The metric
    names and values are the wire contract with storage; use
    :meth:`as_record` for the flat persisted form.
    """

    metrics: dict[str, float] = Field(description="Metric name -> value, in profile order.")
    window_start: datetime = Field(description="Earliest event timestamp in the window.")
    window_end: datetime = Field(description="Latest event timestamp in the window.")
    profile: str = Field(description="Name of the metric profile that produced this record.")

    def __getitem__(self, name: str) -> float:
        return self.metrics[name]

    def __contains__(self, name: object) -> bool:
        return name in self.metrics

    def __len__(self) -> int:
        return len(self.metrics)

    def keys(self) -> Iterator[str]:
        return iter(self.metrics)

    def items(self) -> Iterator[tuple[str, float]]:
        return iter(self.metrics.items())

    def get(self, name: str, default: float | None = None) -> float | None:
        return self.metrics.get(name, default)

    def as_record(self) -> dict[str, float]:
        return dict(self.metrics)


class SessionSummary(BaseModel, frozen=True):
    """Per-session mean of every accumulated window metric."""

    session_id: str
    total_windows: int = Field(ge=1)
    generated_at: datetime
    metrics: dict[str, float] = Field(description="Metric name -> mean, rounded to 4 decimals.")

    def __getitem__(self, name: str) -> float:
        return self.metrics[name]

    def __contains__(self, name: object) -> bool:
        return name in self.metrics

    def as_record(self) -> dict[str, Any]:
        """Flat wire form: every metric plus ``session_id``, ``total_windows``, ``generated_at``."""
        return {
            **self.metrics,
            "session_id": self.session_id,
            "total_windows": self.total_windows,
            "generated_at": self.generated_at.isoformat(),
        }
