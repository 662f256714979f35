"""
Telemetry module for structured logging.

This module provides:
- JSONFormatter for structured JSON log output
- configure_logging to install it on the root logger
- session_id_var for correlating log entries with a session
"""

from telemetry.service import (
    JSONFormatter,
    configure_logging,
    get_session_id,
    session_id_var,
    set_session_id,
)

__all__ = [
    "JSONFormatter",
    "configure_logging",
    "get_session_id",
    "session_id_var",
    "set_session_id",
]
