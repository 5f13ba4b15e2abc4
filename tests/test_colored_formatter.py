"""Tests for ColoredFormatter."""

import logging
from io import StringIO
from unittest.mock import patch

import pytest

from discord_media_player.utils.logging import ColoredFormatter

RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


def _make_record(
    level: int, message: str = "test", name: str = "test.logger"
) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


def _tty_stream() -> StringIO:
    stream = StringIO()
    stream.isatty = lambda: True  # type: ignore[method-assign]
    return stream


class TestColoredFormatter:
    """Tests for ANSI color formatting."""

    @pytest.fixture(autouse=True)
    def _no_color_unset(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)

    @pytest.mark.parametrize(
        "level",
        [logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL],
    )
    def test_color_applied_per_level(self, level: int):
        """Should apply the correct ANSI color code for each level."""
        fmt = ColoredFormatter("%(levelname)s | %(message)s", stream=_tty_stream())

        output = fmt.format(_make_record(level))

        assert LEVEL_COLORS[level] in output
        assert RESET in output

    def test_no_color_when_no_color_env_set(self):
        """Should not apply colors when NO_COLOR env var is set."""
        fmt = ColoredFormatter("%(levelname)s | %(message)s", stream=_tty_stream())

        with patch.dict("os.environ", {"NO_COLOR": "1"}):
            output = fmt.format(_make_record(logging.INFO))

        assert "\033[" not in output

    def test_no_color_when_stream_not_tty(self):
        """Should not apply colors when stream is not a TTY."""
        fmt = ColoredFormatter("%(levelname)s | %(message)s", stream=StringIO())

        output = fmt.format(_make_record(logging.ERROR))

        assert output == "ERROR | test"

    def test_package_prefix_stripped(self):
        """Should shorten logger names inside the package, with or without color."""
        fmt = ColoredFormatter("%(name)s | %(message)s", stream=StringIO())
        record = _make_record(
            logging.INFO, "evicted", name="discord_media_player.infrastructure.cache.cache_store"
        )

        assert fmt.format(record) == "infrastructure.cache.cache_store | evicted"

    def test_foreign_logger_name_kept(self):
        fmt = ColoredFormatter("%(name)s", stream=StringIO())

        assert fmt.format(_make_record(logging.INFO, name="aiosqlite")) == "aiosqlite"

    def test_original_record_not_mutated(self):
        """Should not mutate the original LogRecord."""
        fmt = ColoredFormatter("%(levelname)s | %(name)s", stream=_tty_stream())
        record = _make_record(logging.WARNING, name="discord_media_player.main")

        fmt.format(record)

        assert record.levelname == "WARNING"
        assert record.name == "discord_media_player.main"
