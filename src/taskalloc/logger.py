"""Verbosity-aware logging for taskalloc.

Two levels sit between the standard ones: CHANGES for state the engine
commits, such as assignments and applied resolutions, and CHECKS for the
evaluation that led there. DEBUG carries per-node CPM detail.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

CHANGES_LEVEL = 25  # INFO < CHANGES < WARNING
CHECKS_LEVEL = 15  # DEBUG < CHECKS < INFO

logging.addLevelName(CHANGES_LEVEL, "CHANGES")
logging.addLevelName(CHECKS_LEVEL, "CHECKS")

VERBOSITY_SILENT = 0
VERBOSITY_CHANGES = 1
VERBOSITY_CHECKS = 2
VERBOSITY_DEBUG = 3

_VERBOSITY_LEVELS: dict[int, int] = {
    VERBOSITY_SILENT: logging.ERROR,
    VERBOSITY_CHANGES: CHANGES_LEVEL,
    VERBOSITY_CHECKS: CHECKS_LEVEL,
    VERBOSITY_DEBUG: logging.DEBUG,
}

LOGGER_NAME = "taskalloc"


class AllocLogger(logging.Logger):
    """Logger with `changes()` and `checks()` next to the standard methods."""

    def changes(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(CHANGES_LEVEL):
            self._log(CHANGES_LEVEL, msg, args, **kwargs)

    def checks(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(CHECKS_LEVEL):
            self._log(CHECKS_LEVEL, msg, args, **kwargs)


def get_logger() -> AllocLogger:
    """Return the shared package logger, creating it as an `AllocLogger`."""
    logging.setLoggerClass(AllocLogger)
    logger = logging.getLogger(LOGGER_NAME)
    assert isinstance(logger, AllocLogger)
    return logger


def level_for_verbosity(verbosity: int) -> int:
    """Map a CLI verbosity count onto a logging level.

    Counts above the highest known verbosity behave like debug; negative or
    unknown counts fall back to errors only.
    """
    if verbosity > VERBOSITY_DEBUG:
        return logging.DEBUG
    return _VERBOSITY_LEVELS.get(verbosity, logging.ERROR)


def setup_logger(verbosity: int, stream: TextIO | None = None) -> None:
    """Route package logs to `stream` (stderr by default) at the given verbosity."""
    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(level_for_verbosity(verbosity))

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False


def reset_logger() -> None:
    logger = get_logger()
    logger.handlers.clear()
    logger.setLevel(logging.ERROR)


# Guards for log lines that are costly to format.


def changes_enabled() -> bool:
    return get_logger().isEnabledFor(CHANGES_LEVEL)


def checks_enabled() -> bool:
    return get_logger().isEnabledFor(CHECKS_LEVEL)


def debug_enabled() -> bool:
    return get_logger().isEnabledFor(logging.DEBUG)
