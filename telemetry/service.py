"""
Structured logging for the session store.

This module provides JSON log output with session correlation: every
entry carries the id of the session being handled by the current request
(set by the session middleware), so a session's reads, writes, and
failures can be followed across log lines.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Id of the session handled by the current request, set by the middleware
session_id_var: ContextVar[str] = ContextVar("session_id", default="")

# Attributes every LogRecord has; anything else came in through ``extra``
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per entry.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry
    - session_id: Correlation id of the current session, if any

    Fields passed through ``extra=`` are merged in, as is an
    ``extra_data`` dict when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "session_id": session_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        for key, value in vars(record).items():
            if key not in _RESERVED_RECORD_ATTRS and key != "extra_data":
                log_data[key] = value

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


def configure_logging(settings: Optional[Any] = None, stream: Any = None) -> logging.Logger:
    """
    Configure the root logger for JSON output.

    Args:
        settings: Object with a ``log_level`` attribute (SessionSettings).
        stream: Output stream, stdout by default.

    Returns:
        The "telemetry" logger.
    """
    log_level_str = "INFO"
    if settings is not None and hasattr(settings, "log_level"):
        log_level_str = settings.log_level

    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicate logs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    logger = logging.getLogger("telemetry")
    logger.info("Logging configured", extra={"extra_data": {"log_level": log_level_str}})
    return logger


def set_session_id(session_id: str) -> None:
    """Set the session id for the current context (outside the middleware)."""
    session_id_var.set(session_id)


def get_session_id() -> str:
    """Return the session id of the current context, or an empty string."""
    return session_id_var.get("")
