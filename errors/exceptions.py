"""
Exception classes for the session store.

This module provides the SessionException base class and one subclass per
failure kind. Each subclass carries a fixed ErrorCode so callers can tell
fail-fast errors (bad identity, bad key material, corrupt payloads) apart
from backend failures that the retry policy is allowed to repeat.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code, is_retryable


class SessionException(Exception):
    """
    Base exception class for all session store errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context (e.g., the offending key)

    Example:
        raise SessionException(
            error_code=ErrorCode.RESERVED_KEY,
            message="Key '__ttl' is reserved",
            details={"key": "__ttl"}
        )
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize a SessionException.

        Args:
            message: A human-readable error message
            error_code: The error code (defaults to the class's default_code)
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code or self.default_code
        self.message = message
        self.status_code = status_code or get_default_status_code(self.error_code)
        self.details = details
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether the backend retry policy may attempt the operation again."""
        return is_retryable(self.error_code)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class InvalidIdentity(SessionException):
    """Explicitly supplied session id does not match the id format."""
    default_code = ErrorCode.INVALID_IDENTITY


class ReservedKey(SessionException):
    """A write targeted one of the internal bookkeeping keys."""
    default_code = ErrorCode.RESERVED_KEY


class SessionNotStarted(SessionException):
    """A write was attempted before start() loaded the stored record."""
    default_code = ErrorCode.SESSION_NOT_STARTED


class SerializationFailure(SessionException):
    """Session data could not be encoded to, or decoded from, JSON."""
    default_code = ErrorCode.SERIALIZATION_FAILURE


class EncryptionConfigError(SessionException):
    """Encryption is unavailable or key material is unusable."""
    default_code = ErrorCode.ENCRYPTION_CONFIG_ERROR


class DecryptionFailure(SessionException):
    """Stored payload is not a valid envelope or no key can open it."""
    default_code = ErrorCode.DECRYPTION_FAILURE


class BackendTransientFailure(SessionException):
    """A single backend operation failed; the retry policy may repeat it."""
    default_code = ErrorCode.BACKEND_TRANSIENT_FAILURE


class BackendPermanentFailure(SessionException):
    """
    A backend operation kept failing through every retry attempt.

    Wraps the last exception that caused the failure, providing context
    about the attempts made.
    """
    default_code = ErrorCode.BACKEND_PERMANENT_FAILURE

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        last_exception: Optional[BaseException] = None,
        operation_name: Optional[str] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize a BackendPermanentFailure.

        Args:
            message: Human-readable error message
            attempts: Number of attempts made
            last_exception: The last exception that caused failure
            operation_name: Optional name of the operation that failed
            details: Optional dictionary with additional error context
        """
        self.attempts = attempts
        self.last_exception = last_exception
        self.operation_name = operation_name
        super().__init__(message, details=details)
