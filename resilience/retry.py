"""
Bounded retry logic for session storage backends.

This module implements retry functionality for backend operations issued
against network stores (Redis, shared caches). Backends default to one
additional attempt after a fixed 50ms pause; the pause is a blocking
sleep because the session core is synchronous.

When every attempt has failed, the last error is wrapped in a
BackendPermanentFailure and logged with full context.
"""

import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from errors.exceptions import BackendPermanentFailure, SessionException

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Defaults for backend operations
DEFAULT_RETRIES = 1
DEFAULT_RETRY_DELAY_MS = 50


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
            Default is 2 (one retry).
        initial_delay: Delay before the first retry in seconds.
            Default is 0.05.
        exponential_base: Base for backoff calculation. Default is 1.0,
            which keeps the delay fixed between attempts.
        max_delay: Maximum delay between retries in seconds.
            Default is None (no maximum).
        retryable_exceptions: Tuple of exception types that should
            trigger a retry. Default is (Exception,) to retry all.
            A SessionException whose error code is not retryable is
            never retried, whatever this tuple says.
    """
    max_attempts: int = DEFAULT_RETRIES + 1
    initial_delay: float = DEFAULT_RETRY_DELAY_MS / 1000.0
    exponential_base: float = 1.0
    max_delay: Optional[float] = None
    retryable_exceptions: Tuple[Type[BaseException], ...] = field(
        default_factory=lambda: (Exception,)
    )

    @classmethod
    def fixed(
        cls,
        retries: int = DEFAULT_RETRIES,
        delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None
    ) -> "RetryConfig":
        """
        Build a fixed-delay policy from a retry count and a delay in ms.

        Negative values are clamped to zero, so ``retries=0`` means a
        single attempt and ``delay_ms=0`` retries immediately.
        """
        config = cls(
            max_attempts=max(0, retries) + 1,
            initial_delay=max(0, delay_ms) / 1000.0,
            exponential_base=1.0,
        )
        if retryable_exceptions is not None:
            config.retryable_exceptions = retryable_exceptions
        return config


def calculate_delay(
    attempt: int,
    initial_delay: float,
    exponential_base: float,
    max_delay: Optional[float] = None
) -> float:
    """
    Calculate the delay for a given retry attempt.

    The delay is calculated as: initial_delay * (exponential_base ^ attempt)

    With the backend default (exponential_base=1.0) every attempt waits
    the same initial_delay.

    Args:
        attempt: The current attempt number (0-indexed)
        initial_delay: The initial delay in seconds
        exponential_base: The base for exponential calculation
        max_delay: Optional maximum delay cap

    Returns:
        The calculated delay in seconds
    """
    delay = initial_delay * (exponential_base ** attempt)

    if max_delay is not None:
        delay = min(delay, max_delay)

    return delay


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, SessionException):
        return exc.retryable
    return True


def _run_with_retry(
    func: Callable[..., T],
    args: Tuple[Any, ...],
    kwargs: dict[str, Any],
    config: RetryConfig,
    op_name: str
) -> T:
    max_attempts = max(1, config.max_attempts)

    for attempt in range(max_attempts):
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if not _should_retry(e):
                raise

            if attempt == max_attempts - 1:
                logger.error(
                    "Retry exhausted for operation '%s' after %d attempts. "
                    "Last error: %s",
                    op_name,
                    max_attempts,
                    str(e),
                    exc_info=True,
                    extra={
                        "operation": op_name,
                        "attempts": max_attempts,
                        "last_error": str(e),
                        "error_type": type(e).__name__
                    }
                )
                raise BackendPermanentFailure(
                    f"Operation '{op_name}' failed after {max_attempts} attempts",
                    attempts=max_attempts,
                    last_exception=e,
                    operation_name=op_name,
                    details={"operation": op_name, "attempts": max_attempts},
                ) from e

            delay = calculate_delay(
                attempt,
                config.initial_delay,
                config.exponential_base,
                config.max_delay
            )

            logger.warning(
                "Retry attempt %d/%d for operation '%s' failed with %s: %s. "
                "Retrying in %.2f seconds...",
                attempt + 1,
                max_attempts,
                op_name,
                type(e).__name__,
                str(e),
                delay,
                extra={
                    "operation": op_name,
                    "attempt": attempt + 1,
                    "max_attempts": max_attempts,
                    "delay_seconds": delay,
                    "error_type": type(e).__name__,
                    "error_message": str(e)
                }
            )

            if delay > 0:
                time.sleep(delay)

    # Unreachable: the loop either returns or raises on the last attempt
    raise BackendPermanentFailure(
        f"Operation '{op_name}' failed after {max_attempts} attempts",
        attempts=max_attempts,
        operation_name=op_name,
    )


def retry(
    config: Optional[RetryConfig] = None,
    *,
    retries: Optional[int] = None,
    delay_ms: Optional[int] = None,
    retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    operation_name: Optional[str] = None
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that adds bounded retry logic to a function.

    The decorator can be configured either by passing a RetryConfig object
    or by specifying individual parameters. Individual parameters take
    precedence over the config object.

    Example usage:
        # Default backend policy (one retry after 50ms)
        @retry()
        def read_blob(key):
            return client.get(key)

        # Three retries, 10ms apart, only on connection errors
        @retry(retries=3, delay_ms=10, retryable_exceptions=(ConnectionError,))
        def read_blob(key):
            return client.get(key)

    Args:
        config: Optional RetryConfig object with retry settings
        retries: Number of additional attempts (overrides config)
        delay_ms: Fixed delay between attempts in ms (overrides config)
        retryable_exceptions: Tuple of exception types to retry (overrides config)
        operation_name: Optional name for logging purposes

    Returns:
        A decorator function that wraps functions with retry logic
    """
    base_config = config or RetryConfig()
    effective_config = RetryConfig(
        max_attempts=(retries + 1) if retries is not None else base_config.max_attempts,
        initial_delay=(delay_ms / 1000.0) if delay_ms is not None else base_config.initial_delay,
        exponential_base=base_config.exponential_base,
        max_delay=base_config.max_delay,
        retryable_exceptions=(
            retryable_exceptions if retryable_exceptions is not None
            else base_config.retryable_exceptions
        ),
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            op_name = operation_name or func.__name__
            return _run_with_retry(func, args, kwargs, effective_config, op_name)

        return wrapper

    return decorator


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    config: Optional[RetryConfig] = None,
    operation_name: Optional[str] = None,
    **kwargs: Any
) -> T:
    """
    Execute a function with retry logic.

    This is a functional alternative to the @retry decorator for cases
    where the policy is only known at runtime, such as a backend built
    from settings.

    Example usage:
        value = call_with_retry(
            client.get,
            "sess_abc",
            config=RetryConfig.fixed(retries=2),
            operation_name="redis.read"
        )

    Raises:
        BackendPermanentFailure: When all retry attempts are exhausted
    """
    effective_config = config or RetryConfig()
    op_name = operation_name or getattr(func, "__name__", "operation")
    return _run_with_retry(func, args, kwargs, effective_config, op_name)
