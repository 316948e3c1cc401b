"""Logging for the engine packages.

Import events carry their identifiers (batch, wallet, counts) in ``extra``;
``ImportContextFormatter`` renders those as ``key=value`` pairs after the
message so a single log line says which batch it belongs to.

Library modules only call ``get_logger``. The engine app calls
``configure_logging`` once at startup; until then the package roots hold a
``NullHandler``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAMES = ("ledgersync_core", "ledgersync_engine")
_LEVEL_ENV = "LEDGERSYNC_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


class ImportContextFormatter(logging.Formatter):
    """Append ``extra`` fields to the formatted message, sorted by key."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if not context:
            return line
        pairs = " ".join(f"{key}={context[key]}" for key in sorted(context))
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = os.getenv(_LEVEL_ENV, "")
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send both package roots to one stream handler; later calls are no-ops.

    ``level`` defaults to ``LEDGERSYNC_LOG_LEVEL`` when set, otherwise INFO.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(ImportContextFormatter(fmt or _DEFAULT_FORMAT))
    for name in _PKG_LOGGER_NAMES:
        logger = logging.getLogger(name)
        for existing in list(logger.handlers):
            if isinstance(existing, logging.NullHandler):
                logger.removeHandler(existing)
        logger.setLevel(resolved)
        logger.addHandler(handler)
        logger.propagate = False

    _CONFIGURED = True


def reset_logging() -> None:
    """Detach configured handlers so ``configure_logging`` can run again."""
    global _CONFIGURED
    for name in _PKG_LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
    _CONFIGURED = False


def get_logger(name: str) -> logging.Logger:
    """Return a module logger; the package roots stay silent until configured."""
    if not _CONFIGURED:
        for root_name in _PKG_LOGGER_NAMES:
            root = logging.getLogger(root_name)
            if not root.handlers:
                root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["ImportContextFormatter", "configure_logging", "get_logger", "reset_logging"]
