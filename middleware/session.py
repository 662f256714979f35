"""
Session middleware for Starlette and FastAPI applications.

For each request the middleware reads the session cookie, opens a Store
for that id (an unknown or malformed cookie yields a fresh id), starts
it, and exposes it as ``request.state.session``. Route code receives the
session as an explicit handle, either from request state or through the
``get_session`` dependency; there is no process-wide current session.
After the route runs, any cookie the Store queued (new id, regenerated
id, destroyed session) is appended to the response.
"""

import logging
from typing import Any, Callable, Optional

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from errors.exceptions import SessionException
from errors.handlers import handle_session_exception, register_exception_handlers
from session.backends.base import SessionBackend
from session.cookies import COOKIE_NAME, is_https_request
from session.factory import create_backend, create_store
from session.store import Store
from telemetry.service import session_id_var

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Middleware that opens one Store per request.

    The backend is created once and shared by every request; Stores are
    never shared.
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: Optional[Any] = None,
        backend: Optional[SessionBackend] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the middleware.

        Args:
            app: The ASGI application to wrap
            settings: SessionSettings; loaded from the environment if omitted
            backend: Storage backend; built from settings if omitted
            clock: Optional time source passed to every Store
        """
        super().__init__(app)
        if settings is None:
            from config.settings import get_settings

            settings = get_settings()
        self.settings = settings
        self.backend = backend if backend is not None else create_backend(settings)
        self.clock = clock

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        store = create_store(
            self.settings,
            self.backend,
            inbound_id=request.cookies.get(COOKIE_NAME),
            secure_request=is_https_request(request.url.scheme, request.headers),
            clock=self.clock,
        )

        token = session_id_var.set(store.id)
        try:
            try:
                await run_in_threadpool(store.start)
            except SessionException as exc:
                return await handle_session_exception(request, exc)

            request.state.session = store

            response = await call_next(request)

            cookie = store.take_pending_cookie()
            if cookie:
                response.headers.append("set-cookie", cookie)

            return response
        finally:
            # Reset the context variable to avoid leaking between requests
            session_id_var.reset(token)


def get_session(request: Request) -> Store:
    """
    FastAPI dependency returning the Store opened for this request.

    Raises:
        RuntimeError: If SessionMiddleware is not installed.
    """
    store = getattr(request.state, "session", None)
    if store is None:
        raise RuntimeError("SessionMiddleware is not installed on this application.")
    return store


def setup_sessions(
    app,
    settings: Optional[Any] = None,
    backend: Optional[SessionBackend] = None,
    clock: Optional[Callable[[], float]] = None,
) -> None:
    """
    Install the session middleware and session error handlers on an app.

    Args:
        app: The FastAPI application instance
        settings: SessionSettings; loaded from the environment if omitted
        backend: Storage backend; built from settings if omitted
        clock: Optional time source passed to every Store
    """
    app.add_middleware(SessionMiddleware, settings=settings, backend=backend, clock=clock)
    register_exception_handlers(app)
    logger.info("Session middleware installed")
