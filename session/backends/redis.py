"""
Redis-based session backend.

This module provides a Redis-backed implementation of the SessionBackend
contract. Payloads are stored as strings under ``<prefix><id>`` keys,
optionally with a Redis-level expiry. The same backend works against a
standalone server, a Sentinel-managed master, or a Redis Cluster; the
factory classmethods build the matching client.

Connection and timeout errors are retried with the bounded backend
policy; any other Redis error (for example a wrong-type reply) is not
transient and is raised at once as BackendPermanentFailure.
"""

import logging
from typing import Any, Optional, Sequence, Tuple

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from errors.exceptions import BackendPermanentFailure, BackendTransientFailure
from resilience.retry import DEFAULT_RETRIES, DEFAULT_RETRY_DELAY_MS, RetryConfig, call_with_retry
from session.backends.base import SessionBackend

logger = logging.getLogger(__name__)

# Error types worth another attempt against Redis
REDIS_TRANSIENT_ERRORS: Tuple[type, ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    BackendTransientFailure,
)


def redis_retry_config(
    retries: int = DEFAULT_RETRIES,
    delay_ms: int = DEFAULT_RETRY_DELAY_MS
) -> RetryConfig:
    """Fixed-delay retry policy limited to transient Redis errors."""
    return RetryConfig.fixed(retries, delay_ms, retryable_exceptions=REDIS_TRANSIENT_ERRORS)


class RedisBackend(SessionBackend):
    """
    Redis-backed session backend.

    Attributes:
        client: Synchronous redis-py client (standalone, sentinel master
            or cluster)
        prefix: Key prefix for namespace isolation (default: "sess_")
        ttl: Redis-level expiry in seconds; 0 stores without expiry
        retry_config: Retry policy for Redis calls
    """

    def __init__(
        self,
        client: Any,
        prefix: str = "sess_",
        ttl: int = 0,
        retry_config: Optional[RetryConfig] = None
    ):
        self.client = client
        self.prefix = prefix
        self.ttl = max(0, ttl)
        self.retry_config = retry_config or redis_retry_config()

    @classmethod
    def from_url(cls, redis_url: str, **kwargs: Any) -> "RedisBackend":
        """
        Build a backend for a standalone server.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            **kwargs: Passed to the RedisBackend constructor
        """
        import redis

        client = redis.Redis.from_url(redis_url, decode_responses=True)
        return cls(client, **kwargs)

    @classmethod
    def from_sentinel(
        cls,
        sentinels: Sequence[Tuple[str, int]],
        service_name: str,
        password: Optional[str] = None,
        db: Optional[int] = None,
        socket_timeout: float = 0.5,
        **kwargs: Any
    ) -> "RedisBackend":
        """
        Build a backend for the master of a Sentinel-managed service.

        Raises:
            BackendPermanentFailure: If no sentinel can name the master.
        """
        from redis.sentinel import Sentinel

        sentinel = Sentinel(list(sentinels), socket_timeout=socket_timeout)
        try:
            host, port = sentinel.discover_master(service_name)
        except RedisError as e:
            raise BackendPermanentFailure(
                f"Unable to resolve Redis master for service: {service_name}",
                last_exception=e,
                operation_name="sentinel.discover_master",
            ) from e

        logger.info(
            "Resolved Redis master %s:%s for service '%s'",
            host,
            port,
            service_name,
            extra={"service": service_name, "host": host, "port": port},
        )

        master_kwargs: dict[str, Any] = {"decode_responses": True}
        if password:
            master_kwargs["password"] = password
        if db is not None:
            master_kwargs["db"] = db

        client = sentinel.master_for(service_name, **master_kwargs)
        return cls(client, **kwargs)

    @classmethod
    def from_cluster(cls, redis_url: str, **kwargs: Any) -> "RedisBackend":
        """Build a backend for a Redis Cluster reachable at ``redis_url``."""
        from redis.cluster import RedisCluster

        client = RedisCluster.from_url(redis_url, decode_responses=True)
        return cls(client, **kwargs)

    def _get_key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    def _call(self, operation_name: str, func: Any, *args: Any) -> Any:
        """Run a Redis command under the retry policy; other Redis errors fail at once."""
        try:
            return call_with_retry(
                func,
                *args,
                config=self.retry_config,
                operation_name=operation_name,
            )
        except RedisError as e:
            logger.error(
                "Redis command failed: %s",
                e,
                extra={"operation": operation_name, "error_type": type(e).__name__},
            )
            raise BackendPermanentFailure(
                f"Redis command failed: {operation_name}",
                attempts=1,
                last_exception=e,
                operation_name=operation_name,
            ) from e

    def read(self, session_id: str) -> str:
        value = self._call("redis.read", self.client.get, self._get_key(session_id))

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value if isinstance(value, str) else ""

    def write(self, session_id: str, payload: str) -> bool:
        key = self._get_key(session_id)

        if self.ttl > 0:
            result = self._call("redis.write", self.client.setex, key, self.ttl, payload)
        else:
            result = self._call("redis.write", self.client.set, key, payload)

        return result is True or isinstance(result, (str, bytes))

    def destroy(self, session_id: str) -> bool:
        self._call("redis.destroy", self.client.delete, self._get_key(session_id))
        return True

    def gc(self, max_lifetime: int) -> int:
        return 0

    def health_check(self) -> bool:
        """
        Check connectivity to Redis.

        Returns:
            True if Redis answers PING, False otherwise. Never raises.
        """
        try:
            return self.client.ping() is True
        except RedisError:
            return False
