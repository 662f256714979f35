"""
Generic cache session backend.

Adapts any cache object exposing ``get``, ``set`` and ``delete`` (the
shape of most cache clients) to the session backend contract. Every call
goes through the bounded retry policy, since shared caches are usually
reached over the network.
"""

from typing import Any, Optional, Protocol

from errors.exceptions import BackendTransientFailure, SerializationFailure
from resilience.retry import RetryConfig, call_with_retry
from session.backends.base import SessionBackend


class CacheClient(Protocol):
    """Minimal cache interface consumed by CacheBackend."""

    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> Any:
        ...

    def delete(self, key: str) -> Any:
        ...


class CacheBackend(SessionBackend):
    """
    Stores session payloads in a generic cache.

    Attributes:
        cache: Client implementing the CacheClient protocol
        prefix: Key prefix for namespace isolation (default: "sess_")
        ttl: Cache-level expiry in seconds; 0 stores without expiry
        retry_config: Retry policy for cache calls
    """

    def __init__(
        self,
        cache: CacheClient,
        prefix: str = "sess_",
        ttl: int = 0,
        retry_config: Optional[RetryConfig] = None
    ):
        self.cache = cache
        self.prefix = prefix
        self.ttl = max(0, ttl)
        self.retry_config = retry_config or RetryConfig.fixed()

    def _get_key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def read(self, session_id: str) -> str:
        value = call_with_retry(
            self.cache.get,
            self._get_key(session_id),
            config=self.retry_config,
            operation_name="cache.read",
        )

        if value is None:
            return ""

        if not isinstance(value, str):
            raise SerializationFailure(
                "Invalid cache payload type.",
                details={"type": type(value).__name__},
            )

        return value

    def write(self, session_id: str, payload: str) -> bool:
        key = self._get_key(session_id)

        def _set() -> bool:
            if self.ttl > 0:
                result = self.cache.set(key, payload, self.ttl)
            else:
                result = self.cache.set(key, payload)
            if result is False:
                raise BackendTransientFailure("Cache rejected session write.")
            return True

        return call_with_retry(_set, config=self.retry_config, operation_name="cache.write")

    def destroy(self, session_id: str) -> bool:
        call_with_retry(
            self.cache.delete,
            self._get_key(session_id),
            config=self.retry_config,
            operation_name="cache.destroy",
        )
        return True

    def gc(self, max_lifetime: int) -> int:
        return 0
