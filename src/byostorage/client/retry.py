"""Retry logic with exponential backoff for backend calls.

This module provides:
- retry_with_backoff: await a coroutine factory, retrying transient failures
- RetryableError: raised by backends for rate limits and server errors
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from byostorage.core.errors import BackendError

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 60.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0

T = TypeVar("T")


class RetryableError(BackendError):
    """Transient backend failure (HTTP 429 or 5xx).

    Attributes:
        retry_after: Delay requested by the server, in seconds.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        summary: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code, summary)
        self.retry_after = retry_after


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = (RetryableError,),
) -> T:
    """Await a coroutine factory with exponential backoff retry.

    A server-provided retry_after overrides the computed backoff for that
    attempt.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt.
        max_retries: Maximum number of retry attempts.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.

    Returns:
        Result of the awaited call.

    Raises:
        The last exception if all retries fail.
    """
    backoff = initial_backoff

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            if attempt == max_retries:
                logger.error("All %d retries failed: %s", max_retries, e)
                raise

            delay = backoff
            retry_after = getattr(e, "retry_after", None)
            if retry_after is not None:
                delay = retry_after
            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt + 1,
                max_retries + 1,
                e,
                delay,
            )
            await asyncio.sleep(delay)
            backoff = min(backoff * backoff_multiplier, max_backoff)

    raise RuntimeError("Unexpected retry loop exit")
