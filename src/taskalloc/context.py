"""Process-wide CLI context: config file location and evaluation time."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path


class _Context:
    def __init__(self) -> None:
        self.config_path: Path | None = None
        self.now: datetime | None = None


_context = _Context()


def get_config_path() -> Path | None:
    """Config path given with --config, if any."""
    return _context.config_path


def set_config_path(path: Path | None) -> None:
    _context.config_path = path


def get_now() -> datetime | None:
    """Evaluation time given with --now, if any (None means the current time)."""
    return _context.now


def set_now(now: datetime | None) -> None:
    _context.now = now


def reset() -> None:
    """Clear all context (used by tests)."""
    _context.config_path = None
    _context.now = None
