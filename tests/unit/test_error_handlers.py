"""
Unit tests for error codes, exceptions and error handlers.

Tests the error response model and exception handlers to ensure
they produce correctly structured responses.
"""

import json
import logging

import pytest
from unittest.mock import MagicMock
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from errors.codes import ErrorCode, RETRYABLE_CODES, get_default_status_code, is_retryable
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
    RETRY_AFTER_SECONDS,
    ErrorResponse,
    error_headers,
    get_session_id,
    handle_session_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

class TestErrorCodes:
    """Tests for the error code catalog."""

    def test_only_transient_backend_failures_are_retryable(self):
        assert RETRYABLE_CODES == frozenset({ErrorCode.BACKEND_TRANSIENT_FAILURE})
        assert is_retryable(ErrorCode.BACKEND_TRANSIENT_FAILURE) is True
        assert is_retryable(ErrorCode.BACKEND_PERMANENT_FAILURE) is False
        assert is_retryable(ErrorCode.DECRYPTION_FAILURE) is False

    @pytest.mark.parametrize("code,status", [
        (ErrorCode.INVALID_IDENTITY, 400),
        (ErrorCode.RESERVED_KEY, 400),
        (ErrorCode.SESSION_NOT_STARTED, 500),
        (ErrorCode.SERIALIZATION_FAILURE, 500),
        (ErrorCode.ENCRYPTION_CONFIG_ERROR, 500),
        (ErrorCode.BACKEND_PERMANENT_FAILURE, 503),
    ])
    def test_default_status_codes(self, code, status):
        assert get_default_status_code(code) == status

class TestExceptions:
    """Tests for the exception taxonomy."""

    @pytest.mark.parametrize("exc_class,code", [
        (InvalidIdentity, ErrorCode.INVALID_IDENTITY),
        (ReservedKey, ErrorCode.RESERVED_KEY),
        (SessionNotStarted, ErrorCode.SESSION_NOT_STARTED),
        (SerializationFailure, ErrorCode.SERIALIZATION_FAILURE),
        (EncryptionConfigError, ErrorCode.ENCRYPTION_CONFIG_ERROR),
        (DecryptionFailure, ErrorCode.DECRYPTION_FAILURE),
        (BackendTransientFailure, ErrorCode.BACKEND_TRANSIENT_FAILURE),
        (BackendPermanentFailure, ErrorCode.BACKEND_PERMANENT_FAILURE),
    ])
    def test_each_subclass_carries_its_code(self, exc_class, code):
        exc = exc_class("boom")

        assert isinstance(exc, SessionException)
        assert exc.error_code == code
        assert exc.retryable is (code == ErrorCode.BACKEND_TRANSIENT_FAILURE)

    def test_to_dict(self):
        exc = ReservedKey("Key '__ttl' is reserved.", details={"key": "__ttl"})

        assert exc.to_dict() == {
            "error_code": "RESERVED_KEY",
            "message": "Key '__ttl' is reserved.",
            "details": {"key": "__ttl"},
        }

    def test_to_dict_without_details(self):
        assert "details" not in DecryptionFailure("bad").to_dict()

    def test_explicit_code_and_status_override_defaults(self):
        exc = SessionException("custom", error_code=ErrorCode.RESERVED_KEY, status_code=422)

        assert exc.error_code == ErrorCode.RESERVED_KEY
        assert exc.status_code == 422

    def test_permanent_failure_context(self):
        cause = ConnectionError("down")
        exc = BackendPermanentFailure("failed", attempts=2, last_exception=cause, operation_name="redis.read")

        assert exc.attempts == 2
        assert exc.last_exception is cause
        assert exc.operation_name == "redis.read"
        assert "BACKEND_PERMANENT_FAILURE" in repr(exc)

class TestErrorResponse:
    """Tests for the ErrorResponse model."""

    def test_error_response_with_all_fields(self):
        """Test ErrorResponse with all fields populated."""
        response = ErrorResponse(
            error_code="RESERVED_KEY",
            message="Key is reserved",
            details={"key": "__ttl"},
            session_id="0123456789abcdef0123456789abcdef",
        )

        assert response.error_code == "RESERVED_KEY"
        assert response.message == "Key is reserved"
        assert response.details == {"key": "__ttl"}
        assert response.session_id == "0123456789abcdef0123456789abcdef"

    def test_error_response_model_dump_excludes_none(self):
        """Test that model_dump excludes None values when specified."""
        response = ErrorResponse(error_code="INTERNAL_ERROR", message="An error occurred")

        dumped = response.model_dump(exclude_none=True)
        assert dumped == {"error_code": "INTERNAL_ERROR", "message": "An error occurred"}

class TestGetSessionId:
    """Tests for the get_session_id function."""

    def test_get_session_id_from_state(self):
        """Test getting the session id from the Store in request state."""
        request = MagicMock(spec=Request)
        request.state.session.id = "0123456789abcdef0123456789abcdef"

        assert get_session_id(request) == "0123456789abcdef0123456789abcdef"

    def test_get_session_id_without_session(self):
        """Test that None is returned when no session was opened."""
        request = MagicMock(spec=Request)
        request.state.session = None

        assert get_session_id(request) is None

class TestExceptionHandlers:
    """Tests for the exception handler functions."""

    @pytest.fixture
    def request_without_session(self):
        request = MagicMock(spec=Request)
        request.state.session = None
        request.url.path = "/cart"
        request.method = "POST"
        return request

    @pytest.mark.asyncio
    async def test_handle_session_exception(self, request_without_session):
        """Test that session errors become structured responses."""
        exc = ReservedKey("Key '__ttl' is reserved.", details={"key": "__ttl"})

        response = await handle_session_exception(request_without_session, exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 400
        assert json.loads(response.body) == {
            "error_code": "RESERVED_KEY",
            "message": "Key '__ttl' is reserved.",
            "details": {"key": "__ttl"},
        }

    @pytest.mark.asyncio
    async def test_handle_unexpected_exception_hides_details(self, request_without_session):
        """Test that unexpected errors never expose internal details."""
        response = await handle_unexpected_exception(request_without_session, RuntimeError("secret path"))

        body = json.loads(response.body)
        assert response.status_code == 500
        assert body["error_code"] == "INTERNAL_ERROR"
        assert "secret path" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_backend_failure_carries_retry_after(self, request_without_session):
        """Test that backend outages tell the client when to retry."""
        exc = BackendPermanentFailure(
            "Backend unavailable.",
            attempts=2,
            last_exception=ConnectionError("down"),
            operation_name="redis.read",
        )

        response = await handle_session_exception(request_without_session, exc)

        assert response.status_code == 503
        assert response.headers["retry-after"] == str(RETRY_AFTER_SECONDS)

    @pytest.mark.asyncio
    async def test_client_error_has_no_retry_after(self, request_without_session):
        response = await handle_session_exception(request_without_session, ReservedKey("reserved"))

        assert "retry-after" not in response.headers

    @pytest.mark.asyncio
    async def test_log_level_follows_status(self, request_without_session, caplog):
        """Test that 4xx errors log as warnings and 5xx errors as errors."""
        with caplog.at_level(logging.WARNING, logger="errors.handlers"):
            await handle_session_exception(request_without_session, ReservedKey("reserved"))
            await handle_session_exception(request_without_session, DecryptionFailure("bad"))

        assert [r.levelno for r in caplog.records] == [logging.WARNING, logging.ERROR]

    @pytest.mark.asyncio
    async def test_permanent_failure_logs_retry_context(self, request_without_session, caplog):
        exc = BackendPermanentFailure(
            "Backend unavailable.",
            attempts=2,
            last_exception=ConnectionError("down"),
            operation_name="redis.read",
        )

        with caplog.at_level(logging.ERROR, logger="errors.handlers"):
            await handle_session_exception(request_without_session, exc)

        record = caplog.records[-1]
        assert record.attempts == 2
        assert record.operation == "redis.read"
        assert "down" in record.cause

    def test_register_exception_handlers(self):
        """Test that handlers are wired into a FastAPI application."""
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/fail")
        async def fail():
            raise BackendPermanentFailure("Backend rejected session write.")

        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/fail")

        assert response.status_code == 503
        assert response.json()["error_code"] == "BACKEND_PERMANENT_FAILURE"
        assert response.headers["retry-after"] == str(RETRY_AFTER_SECONDS)


class TestErrorHeaders:
    """Tests for error_headers."""

    @pytest.mark.parametrize("exc,expected", [
        (BackendTransientFailure("flaky"), {"Retry-After": str(RETRY_AFTER_SECONDS)}),
        (BackendPermanentFailure("down"), {"Retry-After": str(RETRY_AFTER_SECONDS)}),
        (SerializationFailure("bad"), None),
        (InvalidIdentity("bad"), None),
    ])
    def test_headers_by_error_kind(self, exc, expected):
        assert error_headers(exc) == expected
