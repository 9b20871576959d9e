"""
Retry utility with exponential backoff for feedcrawl.

Used for page navigation retries inside extractors and for the whole-job
retry policy of the job lifecycle manager.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar
from dataclasses import dataclass
from feedcrawl.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0

    def __post_init__(self):
        """Validate configuration."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.exponential_base <= 1:
            raise ValueError("exponential_base must be > 1")


def compute_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Delay to wait after failed attempt number ``attempt`` (1-based).

    Returns ``min(base_delay * exponential_base ** (attempt - 1), max_delay)``.

    Example:
        >>> cfg = RetryConfig(base_delay=1.0, max_delay=30.0)
        >>> [compute_backoff_delay(n, cfg) for n in range(1, 8)]
        [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    """
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    return min(
        config.base_delay * (config.exponential_base ** (attempt - 1)),
        config.max_delay,
    )


async def retry_async_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    retry_on: tuple = (Exception,),
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    should_abort: Optional[Callable[[], bool]] = None,
) -> T:
    """
    Await ``func`` until it succeeds, sleeping with exponential backoff.

    Args:
        func: Coroutine function to retry (takes no arguments)
        config: Retry configuration (default: 3 retries, 1s base delay)
        retry_on: Tuple of exception types to retry on
        on_retry: Optional callback called on each retry (attempt, exception)
        should_abort: Checked before every retry; True re-raises the last error

    Returns:
        Result from the successful call

    Raises:
        Last exception if all retries are exhausted or the retry is aborted
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(1, config.max_retries + 2):
        try:
            return await func()
        except retry_on as e:
            if attempt > config.max_retries:
                logger.error(f"All {config.max_retries} retries exhausted: {e}")
                raise

            if should_abort is not None and should_abort():
                logger.info(f"Retry aborted after attempt {attempt}: {e}")
                raise

            delay = compute_backoff_delay(attempt, config)
            logger.warning(
                f"Retry {attempt}/{config.max_retries} "
                f"after {delay:.2f}s: {e}"
            )

            if on_retry:
                on_retry(attempt, e)

            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")
