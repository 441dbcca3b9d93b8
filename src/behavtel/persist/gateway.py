"""Persistence gateways: durable sinks for raw batches, window features, and summaries.

The feature engine never performs I/O itself; callers hand its outputs
to a :class:`PersistenceGateway`.  Gateway methods are blocking and
signal failure by raising :class:`PersistenceError`; async callers run
them off the event loop (see :mod:`behavtel.capture.monitor`).

Three implementations:

* :class:`ParquetGateway` -- one local parquet table per record kind.
* :class:`RestGateway` -- PostgREST-style ``POST /rest/v1/<table>``
  inserts against a hosted backend.
* :class:`MemoryGateway` -- in-process tables with failure injection,
  for dry runs and tests.
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import pandas as pd

from behavtel.core.defaults import (
    DEFAULT_REST_TIMEOUT_SECONDS,
    FEATURES_TABLE,
    RAW_BATCH_TABLE,
    SUMMARY_TABLE,
)
from behavtel.core.schema import FEATURE_COLUMNS, FEATURES_SCHEMA_HASH, feature_row, validate_feature_frame
from behavtel.core.store import append_rows, read_parquet
from behavtel.core.time import utc_now
from behavtel.core.types import EventBatch, SessionSummary, WindowFeatures

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A gateway could not durably store a record."""


@runtime_checkable
class PersistenceGateway(Protocol):
    """Sink contract consumed by the monitor and the ingestion service."""

    def write_batch(self, user_id: str, batch: EventBatch) -> None: ...
    def write_features(self, user_id: str, features: WindowFeatures) -> None: ...
    def write_summary(self, user_id: str, summary: SessionSummary) -> None: ...


def batch_row(user_id: str, batch: EventBatch) -> dict[str, Any]:
    """Wire form of a raw batch: per-stream JSON lists (null when empty) plus counts."""
    dumped = batch.model_dump(mode="json")
    return {
        "user_id": user_id,
        "keystroke_data": dumped["keys"],
        "mouse_data": dumped["pointer"],
        "scroll_data": dumped["scroll"],
        "metadata": batch.metadata(),
    }


def summary_row(user_id: str, summary: SessionSummary) -> dict[str, Any]:
    return {"user_id": user_id, **summary.as_record()}


# ---------------------------------------------------------------------------
# Local parquet tables
# ---------------------------------------------------------------------------


class ParquetGateway:
    """Append-only parquet tables under *data_dir*, one file per table.

    Raw event lists and batch metadata are stored as JSON text columns.
    """

    def __init__(self, data_dir: Path | str) -> None:
        self._data_dir = Path(data_dir)
        # Serializes read-concat-rewrite appends across worker threads.
        self._write_lock = threading.Lock()

    def table_path(self, table: str) -> Path:
        return self._data_dir / f"{table}.parquet"

    def _append(self, table: str, row: dict[str, Any]) -> None:
        row = {"created_at": utc_now(), **row}
        try:
            with self._write_lock:
                append_rows([row], self.table_path(table))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to append to {table}: {exc}") from exc
        logger.debug("Appended row to %s", self.table_path(table))

    def write_batch(self, user_id: str, batch: EventBatch) -> None:
        row = batch_row(user_id, batch)
        for col in ("keystroke_data", "mouse_data", "scroll_data", "metadata"):
            if row[col] is not None:
                row[col] = json.dumps(row[col])
        self._append(RAW_BATCH_TABLE, row)

    def write_features(self, user_id: str, features: WindowFeatures) -> None:
        row = {**feature_row(user_id, features.metrics), "schema_hash": FEATURES_SCHEMA_HASH}
        self._append(FEATURES_TABLE, row)

    def write_summary(self, user_id: str, summary: SessionSummary) -> None:
        self._append(SUMMARY_TABLE, summary_row(user_id, summary))

    def read_features(self) -> pd.DataFrame:
        """Load the window-feature table, checked against the current column contract.

        Returns an empty frame when nothing has been stored yet.

        Raises:
            ValueError: If the stored table does not match the contract.
        """
        path = self.table_path(FEATURES_TABLE)
        if not path.exists():
            return pd.DataFrame(columns=["user_id", *FEATURE_COLUMNS, "schema_hash"])
        df = read_parquet(path)
        validate_feature_frame(df)
        return df


# ---------------------------------------------------------------------------
# Hosted REST backend
# ---------------------------------------------------------------------------


class RestGateway:
    """Insert rows through a PostgREST-compatible endpoint.

    Args:
        base_url: Project URL, e.g. ``https://example.supabase.co``.
        api_key: Key sent as ``apikey`` and as the bearer token.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_REST_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    def _insert(self, table: str, row: dict[str, Any]) -> None:
        url = f"{self._base_url}/rest/v1/{table}"
        body = json.dumps([row]).encode("utf-8")
        req = urllib.request.Request(
            url,
            data=body,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Prefer": "return=minimal",
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                status = resp.status
        except (urllib.error.URLError, OSError) as exc:
            raise PersistenceError(f"Insert into {table} failed: {exc}") from exc
        if status >= 300:
            raise PersistenceError(f"Insert into {table} returned HTTP {status}")
        logger.info("Stored row in %s", table)

    def write_batch(self, user_id: str, batch: EventBatch) -> None:
        self._insert(RAW_BATCH_TABLE, batch_row(user_id, batch))

    def write_features(self, user_id: str, features: WindowFeatures) -> None:
        self._insert(FEATURES_TABLE, feature_row(user_id, features.metrics))

    def write_summary(self, user_id: str, summary: SessionSummary) -> None:
        self._insert(SUMMARY_TABLE, summary_row(user_id, summary))


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class MemoryGateway:
    """Keeps rows in per-table lists.

    Set ``fail_tables`` to make writes to those tables raise
    :class:`PersistenceError`.
    """

    def __init__(self, *, fail_tables: set[str] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            RAW_BATCH_TABLE: [],
            FEATURES_TABLE: [],
            SUMMARY_TABLE: [],
        }
        self.fail_tables: set[str] = set(fail_tables or ())

    def _append(self, table: str, row: dict[str, Any]) -> None:
        if table in self.fail_tables:
            raise PersistenceError(f"Simulated failure writing {table}")
        self.tables[table].append(row)

    def write_batch(self, user_id: str, batch: EventBatch) -> None:
        self._append(RAW_BATCH_TABLE, batch_row(user_id, batch))

    def write_features(self, user_id: str, features: WindowFeatures) -> None:
        self._append(FEATURES_TABLE, feature_row(user_id, features.metrics))

    def write_summary(self, user_id: str, summary: SessionSummary) -> None:
        self._append(SUMMARY_TABLE, summary_row(user_id, summary))
