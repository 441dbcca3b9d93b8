"""Centralised default constants for behavtel.

Every project-wide magic number / string lives here.
Import these instead of hard-coding values in function signatures or CLI options.
"""

from __future__ import annotations

from typing import Final

# ── Capture / batching ──
DEFAULT_BATCH_SIZE: Final[int] = 150
DEFAULT_FLUSH_INTERVAL_SECONDS: Final[float] = 30.0
DEFAULT_MOUSE_THROTTLE_MS: Final[int] = 120

# ── Feature extraction ──
# Assumed events-per-second of a fully active user.  Tunable, not derived.
DEFAULT_IDLE_EVENTS_PER_SECOND: Final[float] = 5.0
DEFAULT_PROFILE: Final[str] = "keystroke"
BACKSPACE_KEY: Final[str] = "BACKSPACE"

# ── Session summary ──
SUMMARY_PRECISION: Final[int] = 4
SESSION_ID_PREFIX: Final[str] = "session_"
SESSION_ID_SUFFIX_LENGTH: Final[int] = 9

# ── Paths ──
DEFAULT_DATA_DIR: Final[str] = "data/behavior"

# ── Persistence tables ──
RAW_BATCH_TABLE: Final[str] = "behavior_logs"
FEATURES_TABLE: Final[str] = "behavior_features"
SUMMARY_TABLE: Final[str] = "session_summaries"

# ── REST backend ──
DEFAULT_REST_TIMEOUT_SECONDS: Final[int] = 10

# ── Service ──
DEFAULT_SERVER_HOST: Final[str] = "127.0.0.1"
DEFAULT_SERVER_PORT: Final[int] = 8765
