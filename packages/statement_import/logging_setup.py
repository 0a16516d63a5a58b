"""Logging for the ``statement_import`` package.

Library modules call ``get_logger("statement_import.<module>")`` and never
attach handlers of their own. Entry points call :func:`configure_logging`
once; it installs a single ``StreamHandler`` on the package logger together
with :class:`AccountMaskFilter`, so account numbers that reach a log line
are shortened to their last four characters. Passwords and statement text
are never handed to a logger in the first place.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import IO

PACKAGE_LOGGER = "statement_import"
LEVEL_ENV = "STATEMENT_IMPORT_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_configured = False

# IBAN-style or dash-grouped account numbers; ISO dates are left alone.
_ACCOUNT_RE = re.compile(
    r"""
    \b(?:
        [A-Z]{2}\d{2}(?:\ ?[0-9A-Z]{4}){2,7}(?:\ ?[0-9A-Z]{1,4})?
      | (?!\d{4}-\d{2}-\d{2}\b)\d{2,6}(?:-\d{2,6}){1,3}
    )\b
    """,
    re.VERBOSE,
)


def mask_account(value: str) -> str:
    """``"0012-3456-78"`` becomes ``"****5678"``."""

    compact = re.sub(r"[\s-]", "", value)
    if len(compact) <= 4:
        return value
    return "****" + compact[-4:]


class AccountMaskFilter(logging.Filter):
    """Rewrite account numbers in the rendered message of every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _ACCOUNT_RE.sub(lambda m: mask_account(m.group(0)), message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def resolve_level(level: int | str | None) -> int:
    """Accept an int, a level name or a numeric string; fall back to the env, then INFO."""

    if level is None:
        level = os.getenv(LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    if numeric is None:
        raise ValueError(f"unknown log level: {level!r}")
    return numeric


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> logging.Logger:
    """Configure the package logger; later calls only adjust the level."""

    global _configured
    logger = logging.getLogger(PACKAGE_LOGGER)
    resolved = resolve_level(level)
    logger.setLevel(resolved)
    if _configured:
        return logger

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    handler.addFilter(AccountMaskFilter())
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
    return logger


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if not _configured and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "AccountMaskFilter",
    "configure_logging",
    "get_logger",
    "mask_account",
    "resolve_level",
]
