"""Retry helper with configurable backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Literal, TypeVar

from .errors import TaskloopError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Backoff = Literal["exponential", "linear", "fixed"]


def compute_delay(
    attempt: int,
    backoff: Backoff = "exponential",
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
) -> float:
    """Delay in seconds before retrying after ``attempt`` (1-based) failed."""
    if backoff == "exponential":
        delay = initial_delay * (2 ** (attempt - 1))
    elif backoff == "linear":
        delay = initial_delay * attempt
    elif backoff == "fixed":
        delay = initial_delay
    else:
        raise ValueError(f"Unknown backoff strategy: {backoff}")
    return min(delay, max_delay)


def retry_on_retryable(error: Exception) -> bool:
    """Retry taskloop errors flagged retryable; leave everything else alone."""
    return isinstance(error, TaskloopError) and error.retryable


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    backoff: Backoff = "exponential",
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    should_retry: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """Await ``fn()`` until it succeeds or attempts run out.

    Args:
        fn: Zero-argument coroutine factory. Called once per attempt.
        max_attempts: Total attempts including the first.
        backoff: Delay growth between attempts.
        initial_delay: Base delay in seconds.
        max_delay: Upper bound for any single delay.
        should_retry: Predicate; when it returns False the error is raised
            immediately.
        on_retry: Called with (attempt, error) before sleeping.

    Returns:
        The first successful result.

    Raises:
        The last error once attempts are exhausted or ``should_retry``
        declines.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= max_attempts:
                raise

            delay = compute_delay(attempt, backoff, initial_delay, max_delay)
            logger.debug("Attempt %d failed (%s), retrying in %.2fs", attempt, e, delay)
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)
            attempt += 1
