"""Keyboard label normalization.

Browsers report ``KeyboardEvent.key`` values such as ``" "``, ``"Enter"``
or ``"ArrowUp"``.  Feature extraction matches on symbolic upper-snake
labels (``SPACE``, ``ENTER``, ``ARROW_UP``), so every captured key goes
through :func:`normalize_key` before it reaches a batch.  Normalization
is idempotent.
"""

from __future__ import annotations

import re
from typing import Final

_ALIASES: Final[dict[str, str]] = {
    " ": "SPACE",
    "spacebar": "SPACE",
    "esc": "ESCAPE",
    "del": "DELETE",
    "up": "ARROW_UP",
    "down": "ARROW_DOWN",
    "left": "ARROW_LEFT",
    "right": "ARROW_RIGHT",
}

_CAMEL_BOUNDARY: Final[re.Pattern[str]] = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

UNKNOWN_KEY: Final[str] = "UNIDENTIFIED"


def normalize_key(raw: str) -> str:
    """Map a raw key value to its normalized label.

    Single printable characters are kept verbatim (case preserved).
    Named keys become upper-snake-case (``"PageDown"`` -> ``"PAGE_DOWN"``).

    Args:
        raw: ``KeyboardEvent.key`` value or an already-normalized label.

    Returns:
        The normalized label; ``"UNIDENTIFIED"`` for empty input.
    """
    if raw == " ":
        return _ALIASES[raw]
    stripped = raw.strip()
    if not stripped:
        return UNKNOWN_KEY
    if len(stripped) == 1:
        return stripped

    alias = _ALIASES.get(stripped.lower())
    if alias is not None:
        return alias
    return _CAMEL_BOUNDARY.sub("_", stripped).replace("-", "_").upper()
