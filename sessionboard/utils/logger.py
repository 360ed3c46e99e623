"""Logging setup shared by the API, the scheduler and the repository."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from sessionboard.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# Server loggers that should follow the application level.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once; later calls only adjust the level.

    Scheduling runs log one summary line per preview or apply, so the
    pipe-delimited format keeps ``key=value`` pairs greppable.
    """

    global _LOGGER_INITIALIZED
    resolved_level = (level or get_settings().log_level).upper()

    if not _LOGGER_INITIALIZED:
        logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
        _LOGGER_INITIALIZED = True
    elif level is not None:
        logging.getLogger().setLevel(resolved_level)
    else:
        return

    for name in _SERVER_LOGGERS:
        logging.getLogger(name).setLevel(resolved_level)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    configure_logging()
    return logging.getLogger(name)
