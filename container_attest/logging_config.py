"""Logging for container-attest.

Everything logs through one package logger, ``container_attest``, to stdout.
Attestation jobs run on ``attest_N`` worker threads and their lines
interleave, so each line names the thread it came from.

Environment:
    LOG_LEVEL: Initial level (default INFO)
    LOG_FORMAT: "json" for one JSON object per line, text otherwise
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

LOGGER_NAME = "container_attest"

TEXT_FORMAT = "[%(asctime)s] %(levelname)s %(threadName)s - %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, timestamped in UTC."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _make_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)


def configure_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Attach the stdout handler to the package logger, or reconfigure it.

    Repeated calls swap the formatter and level; they never add a second handler.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_format: "json" or "text"

    Returns:
        The package logger
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    if not package_logger.handlers:
        package_logger.addHandler(logging.StreamHandler(sys.stdout))
    formatter = _make_formatter(log_format)
    for handler in package_logger.handlers:
        handler.setFormatter(formatter)
    set_log_level(level)
    return package_logger


def configure_from_env() -> logging.Logger:
    return configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FORMAT", "text"))


def set_log_level(level: str) -> None:
    """Change the level of the package logger and all of its handlers."""
    numeric = getattr(logging, level.upper())
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(numeric)
    for handler in package_logger.handlers:
        handler.setLevel(numeric)


logger = configure_from_env()
