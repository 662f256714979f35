"""
Storage backends for session payloads.

Every backend implements the four-operation SessionBackend contract
(read, write, destroy, gc) over opaque string payloads.
"""

from session.backends.base import SessionBackend
from session.backends.cache import CacheBackend, CacheClient
from session.backends.file import FileBackend
from session.backends.memory import MemoryBackend
from session.backends.redis import RedisBackend, redis_retry_config

__all__ = [
    "SessionBackend",
    "CacheBackend",
    "CacheClient",
    "FileBackend",
    "MemoryBackend",
    "RedisBackend",
    "redis_retry_config",
]
