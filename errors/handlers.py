"""
Exception handlers for applications using the session middleware.

Session errors become JSON bodies carrying the error code and the id of
the session being handled. Backend outages are answered with 503 and a
Retry-After hint; anything unexpected is logged with its stack trace and
answered with a generic message.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import BackendPermanentFailure, SessionException

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying after a backend outage
RETRY_AFTER_SECONDS = 1

BACKEND_ERROR_CODES = frozenset({
    ErrorCode.BACKEND_TRANSIENT_FAILURE,
    ErrorCode.BACKEND_PERMANENT_FAILURE,
})


class ErrorResponse(BaseModel):
    """Body of every error response."""
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    session_id: Optional[str] = None


def get_session_id(request: Request) -> Optional[str]:
    """Id of the session attached to the request, or None if none was opened."""
    session = getattr(request.state, "session", None)
    if session is None:
        return None
    return session.id


def error_headers(exc: SessionException) -> Optional[dict[str, str]]:
    """Response headers for a session error; backend failures get Retry-After."""
    if exc.error_code in BACKEND_ERROR_CODES:
        return {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return None


def _log_context(request: Request, exc: SessionException, session_id: Optional[str]) -> dict[str, Any]:
    context = {
        "error_code": exc.error_code.value,
        "error_message": exc.message,
        "status_code": exc.status_code,
        "details": exc.details,
        "session_id": session_id,
        "path": request.url.path,
        "method": request.method,
    }
    if isinstance(exc, BackendPermanentFailure):
        context["attempts"] = exc.attempts
        context["operation"] = exc.operation_name
        if exc.last_exception is not None:
            context["cause"] = repr(exc.last_exception)
    return context


async def handle_session_exception(
    request: Request, exc: SessionException
) -> JSONResponse:
    """
    Convert a SessionException into a structured JSON response.

    Client errors (4xx) are logged as warnings, server-side failures as
    errors. Backend failures carry a Retry-After header.
    """
    session_id = get_session_id(request)

    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(level, "Session error occurred", extra=_log_context(request, exc, session_id))

    error_response = ErrorResponse(
        error_code=exc.error_code.value,
        message=exc.message,
        details=exc.details,
        session_id=session_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
        headers=error_headers(exc),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Answer an unexpected exception without exposing internal details."""
    session_id = get_session_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "session_id": session_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
        exc_info=exc,
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message="An unexpected error occurred. Please try again later.",
        session_id=session_id,
    )

    return JSONResponse(
        status_code=500,
        content=error_response.model_dump(exclude_none=True),
    )


def register_exception_handlers(app) -> None:
    """Register the session and catch-all exception handlers on ``app``."""
    app.add_exception_handler(SessionException, handle_session_exception)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
