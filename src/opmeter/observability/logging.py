"""
Logging — Sink-side setup for meter events.

Meters log through the standard library: readable lines on a message
logger, structured records on a data logger, each tagged with a marker.
This module adds the TRACE level those records use and formatters that
render the marker and structured fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from opmeter.session import short_session_uuid


# Finer than DEBUG; carries the machine-readable data records
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_HANDLER_FLAG = "_opmeter_handler"


class MarkerFilter(logging.Filter):
    """Adds marker and session defaults to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        marker = getattr(record, "marker", None)
        record.marker = getattr(marker, "value", marker) or "-"
        if not hasattr(record, "session"):
            record.session = short_session_uuid()
        return True


class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON for structured logging.
    """

    def format(self, record: logging.LogRecord) -> str:
        marker = getattr(record, "marker", None)
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "marker": getattr(marker, "value", marker),
            "message": record.getMessage(),
            "session": getattr(record, "session", None),
        }

        # Structured meter fields
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    """

    def format(self, record: logging.LogRecord) -> str:
        marker = getattr(record, "marker", None)
        marker = getattr(marker, "value", marker) or "-"

        base = f"{record.levelname:<7} [{marker}] {record.name}: {record.getMessage()}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            base += "\n" + self.formatStack(record.stack_info)

        return base


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    logger_name: str | None = None,
) -> logging.Handler:
    """
    Configure a stream sink for meter events.

    Meter loggers are named after their categories, so by default the
    handler goes on the root logger. Calling again replaces the handler
    installed by the previous call and leaves other handlers alone.

    Args:
        level: Logging level (use TRACE to see data records)
        json_format: Use JSON format (for production)
        stream: Output stream (default: stderr)
        logger_name: Attach to this logger instead of the root logger

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(MarkerFilter())
    setattr(handler, _HANDLER_FLAG, True)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ReadableFormatter())

    target = logging.getLogger(logger_name)
    for existing in list(target.handlers):
        if getattr(existing, _HANDLER_FLAG, False):
            target.removeHandler(existing)
    target.setLevel(level)
    target.addHandler(handler)
    return handler


def get_logger(name: str) -> logging.Logger:
    """Get a logger for an opmeter component."""
    return logging.getLogger(f"opmeter.{name}")
