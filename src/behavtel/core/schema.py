"""Storage column contract for the window-feature table.

The column names are the wire contract with existing stored data and
must not be renamed.  The column list carries a deterministic hash so
readers can detect a silently changed table layout.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Final, Mapping

import pandas as pd

# Ordered; the deterministic hash depends on this ordering.
FEATURE_COLUMNS: Final[tuple[str, ...]] = (
    "avg_mouse_speed",
    "mouse_move_variance",
    "typing_speed",
    "backspace_ratio",
    "scroll_frequency",
    "focus_ratio",
    "idle_ratio",
    "window_duration",
    "avg_keystroke_interval",
    "keystroke_variance",
)


def _build_schema_hash(columns: tuple[str, ...]) -> str:
    """SHA-256 of the JSON column list, truncated to 12 hex chars."""
    payload = json.dumps(list(columns), separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


FEATURES_SCHEMA_HASH: Final[str] = _build_schema_hash(FEATURE_COLUMNS)


def feature_row(user_id: str, metrics: Mapping[str, float]) -> dict[str, Any]:
    """Build one ``behavior_features`` row.

    Every storage column is present; metrics the producing profile does
    not compute are stored as ``0.0``.

    Raises:
        ValueError: If *metrics* carries a name outside the storage contract.
    """
    unknown = set(metrics) - set(FEATURE_COLUMNS)
    if unknown:
        raise ValueError(f"Metrics outside the storage contract: {sorted(unknown)}")
    row: dict[str, Any] = {"user_id": user_id}
    row.update({col: float(metrics.get(col, 0.0)) for col in FEATURE_COLUMNS})
    return row


def validate_feature_frame(df: pd.DataFrame) -> None:
    """Check that *df* carries every feature column with a numeric dtype.

    Frames that carry a ``schema_hash`` column (local parquet tables) must
    match :data:`FEATURES_SCHEMA_HASH` on every row.

    Raises:
        ValueError: On missing columns, non-numeric dtypes, or a stale
            schema hash.
    """
    missing = [c for c in ("user_id", *FEATURE_COLUMNS) if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns: {missing}")
    errors = [
        f"Column '{col}': expected numeric, got dtype={df[col].dtype}"
        for col in FEATURE_COLUMNS
        if df[col].dtype.kind not in {"f", "i", "u"}
    ]
    if errors:
        raise ValueError("DataFrame dtype mismatches:\n" + "\n".join(errors))
    if "schema_hash" in df.columns:
        stale = sorted(set(df["schema_hash"].dropna()) - {FEATURES_SCHEMA_HASH})
        if stale or df["schema_hash"].isna().any():
            raise ValueError(
                f"schema_hash mismatch: expected {FEATURES_SCHEMA_HASH!r}, got {stale or [None]}"
            )
