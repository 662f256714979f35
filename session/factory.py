"""
Wiring of backends and stores from settings.

The core never reads configuration on its own; these helpers turn a
SessionSettings instance into a backend and per-access Store objects.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from errors.codes import ErrorCode
from errors.exceptions import SessionException
from resilience.retry import RetryConfig
from session.backends import (
    CacheBackend,
    FileBackend,
    MemoryBackend,
    RedisBackend,
    SessionBackend,
    redis_retry_config,
)
from session.backends.cache import CacheClient
from session.store import Store

if TYPE_CHECKING:
    from config.settings import SessionSettings

logger = logging.getLogger(__name__)


def create_backend(
    settings: "SessionSettings",
    cache: Optional[CacheClient] = None
) -> SessionBackend:
    """
    Build the backend selected by ``settings.driver``.

    Args:
        settings: Session settings.
        cache: Cache client, required by the "cache" driver.

    Raises:
        SessionException: If the driver needs something that is missing.
    """
    driver = settings.driver

    if driver == "memory":
        backend: SessionBackend = MemoryBackend()
    elif driver == "file":
        backend = FileBackend(settings.file_path)
    elif driver == "cache":
        if cache is None:
            raise SessionException(
                "The cache driver requires a cache client.",
                error_code=ErrorCode.CONFIGURATION_ERROR,
            )
        backend = CacheBackend(
            cache,
            prefix=settings.redis_prefix,
            ttl=settings.redis_ttl,
            retry_config=RetryConfig.fixed(settings.retries, settings.retry_delay_ms),
        )
    else:
        redis_kwargs: dict[str, Any] = {
            "prefix": settings.redis_prefix,
            "ttl": settings.redis_ttl,
            "retry_config": redis_retry_config(settings.retries, settings.retry_delay_ms),
        }
        redis_url = settings.redis_url or "redis://localhost:6379/0"
        if driver == "redis_sentinel":
            backend = RedisBackend.from_sentinel(
                settings.sentinel_addresses(),
                settings.sentinel_service,
                password=settings.redis_password,
                db=settings.redis_db,
                **redis_kwargs,
            )
        elif driver == "redis_cluster":
            backend = RedisBackend.from_cluster(redis_url, **redis_kwargs)
        else:
            backend = RedisBackend.from_url(redis_url, **redis_kwargs)

    logger.info(
        "Session backend created",
        extra={"driver": driver, "backend": type(backend).__name__},
    )
    return backend


def create_store(
    settings: "SessionSettings",
    backend: SessionBackend,
    *,
    session_id: Optional[str] = None,
    inbound_id: Optional[str] = None,
    secure_request: bool = False,
    clock: Optional[Callable[[], float]] = None
) -> Store:
    """Build an unstarted Store configured from ``settings``."""
    kwargs: dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock

    return Store(
        backend,
        session_id,
        inbound_id=inbound_id,
        cookie=settings.cookie_config(),
        encryption=settings.encryption_keyset(),
        secure_request=secure_request,
        **kwargs,
    )
