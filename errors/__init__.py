"""
Error handling module for the session store.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- SessionException and its typed subclasses
- Error response models and FastAPI exception handlers
"""

from errors.codes import ErrorCode, is_retryable
from errors.exceptions import (
    BackendPermanentFailure,
    BackendTransientFailure,
    DecryptionFailure,
    EncryptionConfigError,
    InvalidIdentity,
    ReservedKey,
    SerializationFailure,
    SessionException,
    SessionNotStarted,
)
from errors.handlers import (
    ErrorResponse,
    handle_session_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "is_retryable",
    "SessionException",
    "InvalidIdentity",
    "ReservedKey",
    "SessionNotStarted",
    "SerializationFailure",
    "EncryptionConfigError",
    "DecryptionFailure",
    "BackendTransientFailure",
    "BackendPermanentFailure",
    "ErrorResponse",
    "handle_session_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
