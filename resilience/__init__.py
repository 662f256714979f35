"""
Resilience patterns for session storage backends.

This package provides the bounded retry policy used by network-backed
stores to ride out transient failures.
"""

from resilience.retry import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    RetryConfig,
    calculate_delay,
    call_with_retry,
    retry,
)

__all__ = [
    "DEFAULT_RETRIES",
    "DEFAULT_RETRY_DELAY_MS",
    "RetryConfig",
    "calculate_delay",
    "call_with_retry",
    "retry",
]
