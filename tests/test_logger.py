"""Tests for verbosity levels and the CLI context."""

import io
import logging
from datetime import datetime
from pathlib import Path

import pytest

from taskalloc import context
from taskalloc.logger import (
    CHECKS_LEVEL,
    changes_enabled,
    checks_enabled,
    debug_enabled,
    get_logger,
    level_for_verbosity,
    reset_logger,
    setup_logger,
)


class TestLogger:
    """Test the verbosity-aware logger."""

    @pytest.mark.parametrize(
        ("verbosity", "expected"),
        [
            (0, (False, False, False)),
            (1, (True, False, False)),
            (2, (True, True, False)),
            (3, (True, True, True)),
        ],
    )
    def test_levels(self, verbosity: int, expected: tuple[bool, bool, bool]) -> None:
        setup_logger(verbosity)

        assert (changes_enabled(), checks_enabled(), debug_enabled()) == expected

    def test_changes_written_to_stream(self) -> None:
        stream = io.StringIO()
        setup_logger(1, stream)
        logger = get_logger()

        logger.changes("Assigned t1 to alice")
        logger.checks("hidden at this level")

        assert stream.getvalue() == "Assigned t1 to alice\n"

    def test_setup_replaces_handlers(self) -> None:
        setup_logger(1)
        setup_logger(2)

        assert len(get_logger().handlers) == 1
        assert not get_logger().propagate

    @pytest.mark.parametrize(
        ("verbosity", "level"), [(-1, logging.ERROR), (2, CHECKS_LEVEL), (5, logging.DEBUG)]
    )
    def test_level_for_verbosity(self, verbosity: int, level: int) -> None:
        assert level_for_verbosity(verbosity) == level

    def test_reset(self) -> None:
        setup_logger(3)

        reset_logger()

        assert get_logger().handlers == []
        assert get_logger().level == logging.ERROR


class TestContext:
    """Test process-wide CLI settings."""

    def test_set_and_reset(self) -> None:
        context.set_config_path(Path("cfg.yaml"))
        context.set_now(datetime(2025, 1, 6, 9, 0))

        assert context.get_config_path() == Path("cfg.yaml")
        assert context.get_now() == datetime(2025, 1, 6, 9, 0)

        context.reset()

        assert context.get_config_path() is None
        assert context.get_now() is None
