"""
Retry helper with exponential backoff.

Kept as a plain coroutine function so callers choose what to retry and tests
can drive it with a fake operation and a zero delay.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from core.exceptions import RetryableError, NonRetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable_error(exc: BaseException) -> bool:
    """Default classifier: only errors tagged RetryableError are retried."""
    if isinstance(exc, NonRetryableError):
        return False
    return isinstance(exc, RetryableError)


def backoff_delay(attempt: int, base_delay: float, max_delay: Optional[float] = None) -> float:
    """Delay before retry number ``attempt`` (0-based)."""
    delay = base_delay * (2 ** attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    operation_name: str = "operation",
) -> T:
    """
    Await ``operation()`` until it succeeds or retries are exhausted.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        is_retryable: Classifier deciding whether a failure may be retried
        max_attempts: Total attempts including the first one
        base_delay: Delay before the first retry; doubles each attempt
        max_delay: Upper bound on a single delay
        operation_name: Used in log messages

    Returns:
        The operation's result

    Raises:
        The first non-retryable error, or the last error once attempts run out
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await operation()

        except Exception as e:
            if not is_retryable(e):
                logger.error(f"{operation_name} failed with non-retryable error: {e}")
                raise

            if attempt == max_attempts - 1:
                logger.error(f"{operation_name} failed after {max_attempts} attempts: {e}")
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"{operation_name} failed (attempt {attempt + 1}/{max_attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)
