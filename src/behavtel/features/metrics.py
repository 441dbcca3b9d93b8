"""Per-window metric plugins and metric profiles.

Each metric is a pure function of a :class:`WindowContext` registered
under the name it is persisted as.  A :class:`MetricProfile` is an
explicit, ordered list of metric names; deployments pick a profile
instead of editing extraction code.

Two built-in profiles mirror the two deployed metric sets:

``keystroke``
    Typing rhythm (inter-key interval mean and variance) plus the shared
    mouse, scroll, and idle metrics.

``focus``
    Page-focus share and window duration plus the shared metrics.

Usage::

    from behavtel.features.metrics import get_profile

    profile = get_profile("focus")
    profile.metrics   # ('avg_mouse_speed', ..., 'window_duration')
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Callable, Final, Sequence

import yaml
from pydantic import BaseModel, Field, field_validator

from behavtel.core.defaults import BACKSPACE_KEY, DEFAULT_IDLE_EVENTS_PER_SECOND, DEFAULT_PROFILE
from behavtel.core.time import seconds_between
from behavtel.core.types import KeyEvent, PointerEvent, PointerKind, ScrollEvent, ScrollKind


def mean_and_variance(samples: Sequence[float]) -> tuple[float, float]:
    """Arithmetic mean and population variance of *samples*.

    Returns ``(0.0, 0.0)`` for an empty sequence.  Sums left to right so
    results match the values already stored by earlier collectors.
    """
    if not samples:
        return 0.0, 0.0
    mean = sum(samples) / len(samples)
    variance = sum((s - mean) ** 2 for s in samples) / len(samples)
    return mean, variance


@dataclass(frozen=True)
class WindowContext:
    """Inputs shared by all metric functions for one window.

    ``duration`` is always strictly positive; the extractor never builds
    a context for a degenerate window.
    """

    keys: Sequence[KeyEvent]
    pointer: Sequence[PointerEvent]
    scroll: Sequence[ScrollEvent]
    duration: float
    idle_events_per_second: float = DEFAULT_IDLE_EVENTS_PER_SECOND

    @cached_property
    def moves(self) -> list[PointerEvent]:
        return [e for e in self.pointer if e.kind == PointerKind.MOVE]

    @cached_property
    def scrolls(self) -> list[ScrollEvent]:
        return [e for e in self.scroll if e.kind == ScrollKind.SCROLL]

    @cached_property
    def mouse_speed_stats(self) -> tuple[float, float]:
        """Mean and variance of pixel speed over consecutive MOVE pairs."""
        speeds: list[float] = []
        for prev, cur in zip(self.moves, self.moves[1:]):
            elapsed = seconds_between(prev.timestamp, cur.timestamp)
            if elapsed > 0:
                dx = cur.x - prev.x
                dy = cur.y - prev.y
                speeds.append(math.sqrt(dx * dx + dy * dy) / elapsed)
        return mean_and_variance(speeds)

    @cached_property
    def keystroke_interval_stats(self) -> tuple[float, float]:
        """Mean and variance of seconds between consecutive keystrokes."""
        intervals = [
            seconds_between(prev.timestamp, cur.timestamp)
            for prev, cur in zip(self.keys, self.keys[1:])
        ]
        return mean_and_variance([i for i in intervals if i > 0])


MetricFn = Callable[[WindowContext], float]

_REGISTRY: dict[str, MetricFn] = {}


def register_metric(name: str) -> Callable[[MetricFn], MetricFn]:
    """Decorator that registers *fn* as the metric called *name*."""

    def decorator(fn: MetricFn) -> MetricFn:
        if name in _REGISTRY:
            raise ValueError(f"Metric {name!r} is already registered")
        _REGISTRY[name] = fn
        return fn

    return decorator


def metric_function(name: str) -> MetricFn:
    """Look up a registered metric.

    Raises:
        KeyError: If *name* is not registered.
    """
    return _REGISTRY[name]


def available_metrics() -> list[str]:
    return sorted(_REGISTRY)


# -- mouse ------------------------------------------------------------------


@register_metric("avg_mouse_speed")
def avg_mouse_speed(ctx: WindowContext) -> float:
    return ctx.mouse_speed_stats[0]


@register_metric("mouse_move_variance")
def mouse_move_variance(ctx: WindowContext) -> float:
    return ctx.mouse_speed_stats[1]


# -- keyboard ---------------------------------------------------------------


@register_metric("typing_speed")
def typing_speed(ctx: WindowContext) -> float:
    """Keystrokes per second (not words per minute)."""
    return len(ctx.keys) / ctx.duration


@register_metric("backspace_ratio")
def backspace_ratio(ctx: WindowContext) -> float:
    if not ctx.keys:
        return 0.0
    backspaces = sum(1 for e in ctx.keys if e.key == BACKSPACE_KEY)
    return backspaces / len(ctx.keys)


@register_metric("avg_keystroke_interval")
def avg_keystroke_interval(ctx: WindowContext) -> float:
    return ctx.keystroke_interval_stats[0]


@register_metric("keystroke_variance")
def keystroke_variance(ctx: WindowContext) -> float:
    return ctx.keystroke_interval_stats[1]


# -- scroll / focus / idle --------------------------------------------------


@register_metric("scroll_frequency")
def scroll_frequency(ctx: WindowContext) -> float:
    return len(ctx.scrolls) / ctx.duration


@register_metric("idle_ratio")
def idle_ratio(ctx: WindowContext) -> float:
    """Share of the window without activity, against a fully-active event rate.

    Clicks and moves both count as activity; focus and blur do not.
    """
    active = len(ctx.keys) + len(ctx.pointer) + len(ctx.scrolls)
    return 1 - min(1, active / (ctx.duration * ctx.idle_events_per_second))


@register_metric("focus_ratio")
def focus_ratio(ctx: WindowContext) -> float:
    """Share of the window spent focused.

    Each FOCUS event is paired with the event that immediately follows it
    in the scroll/focus stream.  A trailing FOCUS with no successor is not
    counted.
    """
    focused = 0.0
    for prev, cur in zip(ctx.scroll, ctx.scroll[1:]):
        if prev.kind == ScrollKind.FOCUS:
            focused += seconds_between(prev.timestamp, cur.timestamp)
    return focused / ctx.duration


@register_metric("window_duration")
def window_duration(ctx: WindowContext) -> float:
    return ctx.duration


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class MetricProfile(BaseModel, frozen=True):
    """Named, ordered selection of metrics computed for every window.

    ``idle_events_per_second`` is the active-rate baseline used by
    ``idle_ratio``.
    """

    name: str = Field(min_length=1)
    metrics: tuple[str, ...] = Field(min_length=1)
    idle_events_per_second: float = Field(default=DEFAULT_IDLE_EVENTS_PER_SECOND, gt=0.0)

    @field_validator("metrics")
    @classmethod
    def _known_unique_metrics(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        unknown = [m for m in value if m not in _REGISTRY]
        if unknown:
            raise ValueError(
                f"Unknown metrics {unknown}; must be among {available_metrics()}"
            )
        if len(set(value)) != len(value):
            raise ValueError(f"Duplicate metrics in profile: {list(value)}")
        return value


KEYSTROKE_PROFILE: Final[MetricProfile] = MetricProfile(
    name="keystroke",
    metrics=(
        "typing_speed",
        "backspace_ratio",
        "avg_keystroke_interval",
        "keystroke_variance",
        "avg_mouse_speed",
        "mouse_move_variance",
        "scroll_frequency",
        "idle_ratio",
    ),
)

FOCUS_PROFILE: Final[MetricProfile] = MetricProfile(
    name="focus",
    metrics=(
        "avg_mouse_speed",
        "mouse_move_variance",
        "typing_speed",
        "backspace_ratio",
        "scroll_frequency",
        "focus_ratio",
        "idle_ratio",
        "window_duration",
    ),
)

BUILTIN_PROFILES: Final[dict[str, MetricProfile]] = {
    KEYSTROKE_PROFILE.name: KEYSTROKE_PROFILE,
    FOCUS_PROFILE.name: FOCUS_PROFILE,
}


def get_profile(name: str = DEFAULT_PROFILE) -> MetricProfile:
    """Return the built-in profile called *name*.

    Raises:
        ValueError: If no built-in profile has that name.
    """
    try:
        return BUILTIN_PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown profile {name!r}; must be one of {sorted(BUILTIN_PROFILES)}"
        ) from None


def load_profile(path: Path) -> MetricProfile:
    """Load and validate a metric profile from a YAML file.

    Expected layout::

        name: compact
        metrics: [typing_speed, idle_ratio]
        idle_events_per_second: 4.0   # optional

    Raises:
        pydantic.ValidationError: If the file content is not a valid profile.
    """
    raw = yaml.safe_load(path.read_text())
    return MetricProfile.model_validate(raw)


def save_profile(profile: MetricProfile, path: Path) -> Path:
    data = profile.model_dump()
    data["metrics"] = list(data["metrics"])
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path


def resolve_profile(name_or_path: str) -> MetricProfile:
    """Resolve a built-in profile name, or a path to a YAML profile file."""
    if name_or_path in BUILTIN_PROFILES:
        return BUILTIN_PROFILES[name_or_path]
    path = Path(name_or_path)
    if path.suffix in (".yaml", ".yml") and path.exists():
        return load_profile(path)
    return get_profile(name_or_path)
