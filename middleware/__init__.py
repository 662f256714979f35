"""
Middleware components for applications using the session store.

This module contains the FastAPI/Starlette middleware that opens a
session for each request and sends the session cookie back.
"""

from middleware.session import SessionMiddleware, get_session, setup_sessions

__all__ = [
    "SessionMiddleware",
    "get_session",
    "setup_sessions",
]
