"""
Error code catalog for the session store.

This module defines all error codes raised by the session core, covering
identity validation, payload serialization, encryption, and storage
backend failures.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used by the session store.

    Each error code maps to a default HTTP status code and a category:
    - Validation errors (4xx): bad identifiers or keys supplied by callers
    - State errors (5xx): operations out of lifecycle order
    - Data errors (5xx): payloads that cannot be encoded or decoded
    - Configuration errors (5xx): unusable settings or key material
    - Backend errors (5xx): storage failures, transient or permanent
    """

    # Validation errors (4xx)
    INVALID_IDENTITY = "INVALID_IDENTITY"
    """Explicitly supplied session id fails the format check (HTTP 400)"""

    RESERVED_KEY = "RESERVED_KEY"
    """Write attempted to an internal bookkeeping key (HTTP 400)"""

    # State errors (5xx)
    SESSION_NOT_STARTED = "SESSION_NOT_STARTED"
    """Store used for writing before start() loaded the record (HTTP 500)"""

    # Data errors (5xx)
    SERIALIZATION_FAILURE = "SERIALIZATION_FAILURE"
    """Session data cannot be encoded to or decoded from JSON (HTTP 500)"""

    DECRYPTION_FAILURE = "DECRYPTION_FAILURE"
    """Stored payload cannot be opened with any configured key (HTTP 500)"""

    # Configuration errors (5xx)
    ENCRYPTION_CONFIG_ERROR = "ENCRYPTION_CONFIG_ERROR"
    """Key material missing or not resolvable to 32 raw bytes (HTTP 500)"""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Settings are missing or invalid (HTTP 500)"""

    # Backend errors (5xx)
    BACKEND_TRANSIENT_FAILURE = "BACKEND_TRANSIENT_FAILURE"
    """A single backend operation failed and may be retried (HTTP 503)"""

    BACKEND_PERMANENT_FAILURE = "BACKEND_PERMANENT_FAILURE"
    """A backend operation failed after all retry attempts (HTTP 503)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.INVALID_IDENTITY: 400,
    ErrorCode.RESERVED_KEY: 400,
    ErrorCode.SESSION_NOT_STARTED: 500,
    ErrorCode.SERIALIZATION_FAILURE: 500,
    ErrorCode.DECRYPTION_FAILURE: 500,
    ErrorCode.ENCRYPTION_CONFIG_ERROR: 500,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.BACKEND_TRANSIENT_FAILURE: 503,
    ErrorCode.BACKEND_PERMANENT_FAILURE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}

# Error codes that the backend retry policy may attempt again
RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.BACKEND_TRANSIENT_FAILURE,
})


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)


def is_retryable(error_code: ErrorCode) -> bool:
    """Return True if failures carrying this code may be retried."""
    return error_code in RETRYABLE_CODES
