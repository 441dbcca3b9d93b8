"""Parquet table primitives backing the local persistence gateway."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Any, Sequence

import pandas as pd


def write_parquet(df: pd.DataFrame, path: Path) -> Path:
    """Replace the parquet table at *path* with *df* atomically.

    The frame goes to a temporary file next to *path*, which then
    replaces the target via :func:`os.replace`; readers never observe a
    half-written table.

    Returns:
        *path*.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".parquet.tmp")
    try:
        os.close(fd)
        df.to_parquet(tmp, engine="pyarrow", index=False)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    return path


def read_parquet(path: Path) -> pd.DataFrame:
    return pd.read_parquet(path, engine="pyarrow")


def append_rows(rows: Sequence[dict[str, Any]], path: Path) -> Path:
    """Append *rows* to the parquet table at *path*, creating it if needed.

    Existing rows keep their order and the new rows follow.  Columns
    absent from either side are filled with nulls.

    Returns:
        *path*.
    """
    new = pd.DataFrame(list(rows))
    if path.exists():
        new = pd.concat([read_parquet(path), new], ignore_index=True)
    return write_parquet(new, path)
