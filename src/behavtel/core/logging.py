"""Sanitizing log filter and logging setup.

Keystroke labels, typed text, user agents, and backend credentials must
never reach log output.  :class:`SanitizingFilter` rewrites ``key=value``
and ``key: value`` pairs for those keys into redaction markers.
"""

from __future__ import annotations

import logging
import re
from typing import Final

_SENSITIVE_KEYS: Final[tuple[str, ...]] = (
    "keystroke_data",
    "typed_text",
    "key",
    "user_agent",
    "api_key",
    "apikey",
    "authorization",
)

_REDACTED: Final[str] = "[REDACTED]"

_SENSITIVE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b(?P<key>"
    + "|".join(re.escape(k) for k in _SENSITIVE_KEYS)
    + r")\s*[=:]\s*(?P<value>\"[^\"]*\"|'[^']*'|(?:bearer\s+)?\S+)",
    re.IGNORECASE,
)

_LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def redact_message(message: str) -> str:
    """Replace sensitive ``key=value`` or ``key: value`` pairs with redaction markers."""
    return _SENSITIVE_PATTERN.sub(
        lambda m: f"{m.group('key')}={_REDACTED}", message,
    )


class SanitizingFilter(logging.Filter):
    """A :class:`logging.Filter` that strips sensitive values from records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.msg = redact_message(record.getMessage())
            record.args = None
        else:
            record.msg = redact_message(str(record.msg))
        return True


def install_sanitizing_filter(
    logger: logging.Logger | None = None,
    *,
    handler_level: bool = False,
) -> SanitizingFilter:
    """Attach a :class:`SanitizingFilter` to *logger* (or the root logger).

    Targets that already carry a :class:`SanitizingFilter` are left alone,
    so repeated calls do not stack filters.

    Args:
        logger: Target logger.  Defaults to the root logger if ``None``.
        handler_level: If ``True``, install on each handler of *logger*
            instead of the logger itself.  Filters on a logger do not see
            records propagated from child loggers; handler filters do.

    Returns:
        The filter instance that was installed.
    """
    filt = SanitizingFilter()
    target = logger or logging.getLogger()

    for filterer in target.handlers if handler_level else [target]:
        if not _has_sanitizer(filterer):
            filterer.addFilter(filt)

    return filt


def _has_sanitizer(filterer: logging.Filterer) -> bool:
    return any(isinstance(f, SanitizingFilter) for f in filterer.filters)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Basic console logging with sanitization on every root handler."""
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    install_sanitizing_filter(handler_level=True)
