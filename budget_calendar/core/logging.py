"""Logging setup for the ``budget_calendar`` package.

``configure_logging`` attaches one ``StreamHandler`` to the package root
logger and is meant to be called once by the application entrypoint.
``get_logger`` hands out named loggers and keeps a ``NullHandler`` on the
package root until configuration runs, so library use stays silent.

Modules never attach handlers themselves; they call
``get_logger(__name__)`` and rely on the host application.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

from .config import settings

_PKG_LOGGER_NAME = "budget_calendar"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
        return logging.INFO
    return _parse_level(settings.LOG_LEVEL)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    ``level`` falls back to ``BUDGET_LOG_LEVEL`` (via settings) when omitted.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(_parse_level(level))
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s"))

    logger.setLevel(_parse_level(level))
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
