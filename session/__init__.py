"""
Session state store.

This package holds a visitor's per-session key/value data, keyed by a
session id carried in a cookie, and persists it through a replaceable
storage backend with optional authenticated encryption.
"""

from session.backends import (
    CacheBackend,
    FileBackend,
    MemoryBackend,
    RedisBackend,
    SessionBackend,
)
from session.cookies import COOKIE_NAME, CookieConfig, is_https_request
from session.encryption import Encrypter, EncryptionKeySet
from session.identity import generate_id, is_valid_id
from session.scope import SessionScope
from session.store import Store

__all__ = [
    "COOKIE_NAME",
    "CacheBackend",
    "CookieConfig",
    "Encrypter",
    "EncryptionKeySet",
    "FileBackend",
    "MemoryBackend",
    "RedisBackend",
    "SessionBackend",
    "SessionScope",
    "Store",
    "generate_id",
    "is_https_request",
    "is_valid_id",
]
