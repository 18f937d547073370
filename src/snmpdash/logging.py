"""
Structured logging for snmpdash.

Log records are rendered as one JSON object per line. Structured context is
passed through the standard ``extra={...}`` argument and lands as top-level
JSON fields.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from snmpdash.config import LoggingConfig

ROOT_LOGGER_NAME = "snmpdash"

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """
    Render each record as a single JSON line.

    Fixed keys are ``timestamp`` (UTC, ISO 8601), ``level``, ``logger`` and
    ``message``, plus ``exception`` when exc_info is set. Every non-None
    value passed through ``extra`` is added at the top level; values JSON
    cannot encode are rendered with str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_RECORD_KEYS and value is not None
        )
        return json.dumps(entry, default=str)


def _stdout_handler(level: int, json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter = JSONFormatter() if json_format else logging.Formatter(DEFAULT_LOG_FORMAT)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
) -> logging.Logger:
    """
    Configure the ``snmpdash`` logger and return it.

    Calling it again replaces the previous handler. Records do not
    propagate to the root logger.

    Args:
        config: LoggingConfig; when given, its fields win over the keyword
            arguments.
        level: Level name used without a config.
        json_format: JSON lines (default) or plain text.
        log_to_stdout: Install a stdout handler.

    Example:
        >>> logger = setup_logging(level="DEBUG")
        >>> logger.info("Server started", extra={"listen": "127.0.0.1:8080"})
    """
    if config is not None:
        level = config.level
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.handlers.clear()
    if log_to_stdout:
        logger.addHandler(_stdout_handler(numeric_level, json_format))
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger below ``snmpdash``; foreign names get the prefix added.

    Example:
        >>> get_logger("custom").name
        'snmpdash.custom'
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
