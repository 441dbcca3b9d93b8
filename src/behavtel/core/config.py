"""Per-install monitor configuration persisted as JSON.

The file lives in the data directory and is created on first access
with an auto-generated ``install_id`` (UUID) that never changes.

Typical location::

    data/behavior/config.json

Usage::

    from behavtel.core.config import MonitorConfig

    cfg = MonitorConfig(data_dir)
    cfg.install_id         # stable UUID
    cfg.profile            # "keystroke" unless changed
    cfg.update({"batch_size": 200})   # validated, persisted immediately
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Final

from behavtel.core.defaults import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATA_DIR,
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_IDLE_EVENTS_PER_SECOND,
    DEFAULT_MOUSE_THROTTLE_MS,
    DEFAULT_PROFILE,
)

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "config.json"

_DEFAULTS: Final[dict[str, Any]] = {
    "profile": DEFAULT_PROFILE,
    "batch_size": DEFAULT_BATCH_SIZE,
    "flush_interval_seconds": DEFAULT_FLUSH_INTERVAL_SECONDS,
    "mouse_throttle_ms": DEFAULT_MOUSE_THROTTLE_MS,
    "idle_events_per_second": DEFAULT_IDLE_EVENTS_PER_SECOND,
    "rest_url": None,
}

_POSITIVE_NUMBERS: Final[frozenset[str]] = frozenset(
    ["batch_size", "flush_interval_seconds", "idle_events_per_second"]
)


def _validate(key: str, value: Any) -> Any:
    if key in _POSITIVE_NUMBERS or key == "mouse_throttle_ms":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number, got {value!r}")
        if key in _POSITIVE_NUMBERS and value <= 0:
            raise ValueError(f"{key} must be > 0, got {value!r}")
        if value < 0:
            raise ValueError(f"{key} must be >= 0, got {value!r}")
        if key in ("batch_size", "mouse_throttle_ms"):
            return int(value)
        return float(value)
    if key == "profile":
        value = str(value).strip()
        if not value:
            raise ValueError("profile must not be empty")
    return value


class MonitorConfig:
    """Read/write access to ``config.json`` in a data directory.

    Unknown keys are kept verbatim so the file can carry deployment
    extras.  All mutations are persisted immediately.
    """

    def __init__(self, data_dir: Path | str = DEFAULT_DATA_DIR) -> None:
        self._path = Path(data_dir) / _CONFIG_FILENAME
        self._data: dict[str, Any] = self._load()
        self._ensure_install_id()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._path.exists():
            try:
                return json.loads(self._path.read_text("utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("Corrupt config at %s; using defaults", self._path)
        return {}

    def _ensure_install_id(self) -> None:
        if "install_id" not in self._data:
            self._data["install_id"] = str(uuid.uuid4())
            self._persist()

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, indent=2) + "\n", "utf-8")

    def _get(self, key: str) -> Any:
        return self._data.get(key, _DEFAULTS[key])

    @property
    def install_id(self) -> str:
        """Stable UUID assigned to this install.  Never changes."""
        return self._data["install_id"]

    @property
    def profile(self) -> str:
        return self._get("profile")

    @property
    def batch_size(self) -> int:
        return int(self._get("batch_size"))

    @property
    def flush_interval_seconds(self) -> float:
        return float(self._get("flush_interval_seconds"))

    @property
    def mouse_throttle_ms(self) -> int:
        return int(self._get("mouse_throttle_ms"))

    @property
    def idle_events_per_second(self) -> float:
        return float(self._get("idle_events_per_second"))

    @property
    def rest_url(self) -> str | None:
        return self._get("rest_url")

    def as_dict(self) -> dict[str, Any]:
        return {**_DEFAULTS, **self._data}

    def update(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Validate and merge *patch*, then persist.  Returns the full config.

        ``install_id`` is ignored in *patch*; it is immutable after creation.

        Raises:
            ValueError: If a known setting has an invalid value.  Nothing is
                persisted in that case.
        """
        staged = {
            key: _validate(key, val)
            for key, val in patch.items()
            if key != "install_id"
        }
        self._data.update(staged)
        self._persist()
        return self.as_dict()
