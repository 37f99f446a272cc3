"""
Retry utilities with exponential backoff and jitter.

Used for downloads of backend install scripts. Service calls (update checks,
schedule, metadata) never retry internally; callers decide.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from nodeswitch.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def calculate_backoff_delay(
    attempt: int, base_delay: float = 2.0, max_delay: float = 60.0, jitter: bool = True
) -> float:
    """
    Calculate exponential backoff delay with optional jitter.

    Args:
        attempt: Current attempt number (0-indexed, so attempt 0 = first retry)
        base_delay: Base delay in seconds (default: 2.0)
        max_delay: Maximum delay in seconds (default: 60.0)
        jitter: Whether to add random jitter of up to one second (default: True)

    Returns:
        Delay in seconds

    Example:
        >>> calculate_backoff_delay(0, jitter=False)
        2.0
        >>> calculate_backoff_delay(1, jitter=False)
        4.0
    """
    # attempt 0 = base^1, attempt 1 = base^2, ...
    delay = min(base_delay ** (attempt + 1), max_delay)

    if jitter:
        delay += random.uniform(0, 1)

    return delay


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay: float = 2.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[int, float, Exception], None]] = None,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    jitter: bool = True,
) -> T:
    """
    Await ``func`` until it succeeds, retrying with exponential backoff.

    Args:
        func: Coroutine factory to retry (should raise on failure)
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Base delay in seconds for exponential backoff
        max_delay: Maximum delay in seconds
        on_retry: Optional callback(attempt, delay, error) called before each retry
        exceptions: Exception types that trigger a retry; others propagate at once
        jitter: Whether to add random jitter to each delay

    Returns:
        Result of func

    Raises:
        The last exception raised by func once retries are exhausted
    """
    attempt = 0
    while True:
        try:
            return await func()
        except exceptions as e:
            if attempt >= max_retries:
                logger.debug("Giving up after %d attempts: %s", attempt + 1, e)
                raise

            delay = calculate_backoff_delay(attempt, base_delay, max_delay, jitter=jitter)
            logger.info(
                f"Attempt {attempt + 1}/{max_retries + 1} failed. "
                f"Retrying in {delay:.1f}s... ({type(e).__name__}: {e})"
            )
            if on_retry:
                on_retry(attempt, delay, e)

            await asyncio.sleep(delay)
            attempt += 1
