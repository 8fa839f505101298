"""
Logging Configuration — Structured logging for the mirror engine.

Provides:
- JSON output for log shippers, with the mirror's extra fields
  (operation, record_id, checkpoint) lifted to top-level keys
- Human-readable output for terminals
- Separate levels for the root logger and the loginmirror loggers

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)
- LOGIN_MIRROR_LOG_LEVEL: level for loginmirror.* only (default: LOG_LEVEL)

## Usage

    from loginmirror.logging_config import setup_logging

    setup_logging()  # Call once at startup

    logger.error(
        "[mirror] add failed",
        extra={"operation": "add-login", "record_id": record.id},
    )
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

EXTRA_FIELDS = ("operation", "record_id", "checkpoint")

PACKAGE_LOGGER = "loginmirror"


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"ts": "...", "level": "...", "logger": "...", "thread": "...",
     "message": "...", "operation": "...", "record_id": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    Terminal formatter.

    12:34:56 ERROR   [change_mirror  ] [mirror] add failed (record_id={...})
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        level = f"{record.levelname:7}"
        if sys.stderr.isatty():
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        module = record.name.split(".")[-1][:15]
        line = f"{time_str} {level} [{module:15}] {record.getMessage()}"

        record_id = getattr(record, "record_id", None)
        if record_id is not None:
            line += f" (record_id={record_id})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure the root handler and the loginmirror logger levels.

    Args:
        level: Root log level. Defaults to LOG_LEVEL or INFO.
        format_type: json or text. Defaults to LOG_FORMAT or text.
    """
    log_level = level or os.environ.get("LOG_LEVEL", "INFO")
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()
    package_level = os.environ.get("LOGIN_MIRROR_LOG_LEVEL") or log_level

    formatter: logging.Formatter = JSONFormatter() if log_format == "json" else HumanFormatter()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_level(log_level))
    logging.getLogger(PACKAGE_LOGGER).setLevel(_level(package_level))

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, package={package_level}, format={log_format}"
    )
