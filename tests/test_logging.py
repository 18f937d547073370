"""
Tests for the logging module.

This test module validates:
- JSON-formatted structured logging output
- Logger configuration and setup
- Extra fields in log entries
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from io import StringIO

import pytest

from snmpdash.config import LoggingConfig
from snmpdash.logging import ROOT_LOGGER_NAME, JSONFormatter, get_logger, setup_logging

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def string_handler() -> logging.StreamHandler[StringIO]:
    """Create a string handler for capturing log output."""
    handler = logging.StreamHandler(StringIO())
    handler.setFormatter(JSONFormatter())
    return handler


def _record(msg: str = "Test message", args: tuple = (), level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="snmpdash.test",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None,
    )


# =============================================================================
# Tests for JSONFormatter
# =============================================================================


class TestJSONFormatter:
    """Tests for JSONFormatter class."""

    def test_format_basic_log_record(self) -> None:
        """Test formatting a basic log record as JSON."""
        parsed = json.loads(JSONFormatter().format(_record()))

        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "snmpdash.test"
        assert parsed["message"] == "Test message"
        assert datetime.fromisoformat(parsed["timestamp"]).tzinfo is not None

    def test_format_with_extra_fields(self) -> None:
        """Test that extra attributes become top-level fields."""
        record = _record("Poll failed")
        record.source = "core-router"
        record.attempt = 2
        record.skipped = None

        parsed = json.loads(JSONFormatter().format(record))

        assert parsed["source"] == "core-router"
        assert parsed["attempt"] == 2
        assert "skipped" not in parsed
        assert "lineno" not in parsed

    def test_format_with_message_args(self) -> None:
        """Test formatting with message arguments."""
        parsed = json.loads(JSONFormatter().format(_record("Value is %d", (42,))))

        assert parsed["message"] == "Value is 42"

    def test_format_with_exception(self) -> None:
        """Test that exception info is rendered."""
        try:
            raise ValueError("Test error")
        except ValueError:
            record = _record("Failure", level=logging.ERROR)
            record.exc_info = sys.exc_info()

        parsed = json.loads(JSONFormatter().format(record))

        assert "ValueError: Test error" in parsed["exception"]

    def test_format_non_serializable_extra(self) -> None:
        """Test that unknown types are rendered with str()."""
        record = _record()
        record.path = StringIO

        parsed = json.loads(JSONFormatter().format(record))

        assert "StringIO" in parsed["path"]


# =============================================================================
# Tests for setup_logging
# =============================================================================


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_setup_logging_sets_level(self) -> None:
        """Test that the level is applied to the package logger."""
        logger = setup_logging(level="DEBUG")

        assert logger.name == ROOT_LOGGER_NAME
        assert logger.level == logging.DEBUG

    def test_setup_logging_json_format(self) -> None:
        """Test that JSON formatting is the default."""
        logger = setup_logging()

        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_setup_logging_non_json_format(self) -> None:
        """Test plain text formatting."""
        logger = setup_logging(json_format=False)

        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_setup_logging_clears_existing_handlers(self) -> None:
        """Test that repeated setup does not stack handlers."""
        setup_logging()
        logger = setup_logging()

        assert len(logger.handlers) == 1

    def test_setup_logging_without_stdout(self) -> None:
        """Test that log_to_stdout=False installs no handler."""
        assert setup_logging(log_to_stdout=False).handlers == []

    def test_setup_logging_no_propagation(self) -> None:
        """Test that records do not reach the root logger."""
        assert setup_logging().propagate is False

    def test_setup_with_logging_config(self) -> None:
        """Test that a LoggingConfig overrides keyword arguments."""
        config = LoggingConfig(level="warn", json_format=False)

        logger = setup_logging(config, level="DEBUG")

        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)


# =============================================================================
# Tests for get_logger
# =============================================================================


class TestGetLogger:
    """Tests for get_logger()."""

    def test_get_logger_with_module_name(self) -> None:
        """Test that module names are kept."""
        assert get_logger("snmpdash.metrics.poller").name == "snmpdash.metrics.poller"

    def test_get_logger_adds_prefix(self) -> None:
        """Test that foreign names get the package prefix."""
        assert get_logger("custom").name == "snmpdash.custom"

    def test_get_logger_is_child_of_package_logger(
        self, string_handler: logging.StreamHandler[StringIO]
    ) -> None:
        """Test that child loggers write through the package handler."""
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        package_logger.addHandler(string_handler)
        package_logger.setLevel(logging.INFO)

        get_logger("snmpdash.facade").info(
            "Remote call failed", extra={"method": "sources.list"}
        )

        parsed = json.loads(string_handler.stream.getvalue().strip())
        assert parsed["logger"] == "snmpdash.facade"
        assert parsed["method"] == "sources.list"
