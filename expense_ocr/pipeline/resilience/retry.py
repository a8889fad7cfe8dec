"""Retry logic with exponential backoff and jitter.

Example:
    >>> config = RetryConfig(max_attempts=3, initial_delay_seconds=0.5)
    >>> text = retry_with_backoff(
    ...     provider.recognize,
    ...     config,
    ...     (ProviderError, TimeoutError),
    ...     image_bytes,
    ... )
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic.

    Attributes:
        max_attempts: Maximum number of attempts (including initial)
        initial_delay_seconds: Initial delay before first retry
        max_delay_seconds: Maximum delay between retries
        exponential_base: Base for exponential backoff (delay *= base ** attempt)
        jitter: Whether to add random jitter to delays
    """

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based failed attempt."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base**attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


def _log_retry(config: RetryConfig, attempt: int, exc: Exception, delay: float) -> None:
    logger.warning(
        f"Attempt {attempt + 1}/{config.max_attempts} failed: {type(exc).__name__}: {exc}. "
        f"Retrying in {delay:.2f}s...",
        extra={
            "retry_attempt": attempt + 1,
            "max_attempts": config.max_attempts,
            "delay_seconds": delay,
            "exception_type": type(exc).__name__,
        },
    )


def retry_with_backoff(
    func: Callable[..., Any],
    config: RetryConfig,
    retryable_exceptions: Tuple[Type[Exception], ...],
    *args,
    **kwargs,
) -> Any:
    """Retry a blocking call with exponential backoff and jitter.

    Args:
        func: Function to execute
        config: Retry configuration
        retryable_exceptions: Tuple of exception types that trigger retry
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Last exception if all retry attempts fail. Exceptions outside
        retryable_exceptions propagate immediately.
    """
    for attempt in range(config.max_attempts):
        try:
            return func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts - 1:
                logger.error(
                    f"All {config.max_attempts} retry attempts failed",
                    extra={"exception_type": type(e).__name__},
                )
                raise

            delay = config.delay_for(attempt)
            _log_retry(config, attempt, e, delay)
            time.sleep(delay)

    raise RuntimeError("retry_with_backoff called with max_attempts < 1")


async def async_retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    config: RetryConfig,
    retryable_exceptions: Tuple[Type[Exception], ...],
    *args,
    **kwargs,
) -> Any:
    """Async counterpart of retry_with_backoff, used for job store writes."""
    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts - 1:
                logger.error(
                    f"All {config.max_attempts} retry attempts failed",
                    extra={"exception_type": type(e).__name__},
                )
                raise

            delay = config.delay_for(attempt)
            _log_retry(config, attempt, e, delay)
            await asyncio.sleep(delay)

    raise RuntimeError("async_retry_with_backoff called with max_attempts < 1")
