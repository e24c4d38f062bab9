"""Retry utilities with exponential backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt + 1``: base * 2^attempt, capped."""
    return min(base_delay * (2**attempt), max_delay)


async def retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    *args,
    no_retry: tuple[type[BaseException], ...] = (),
    **kwargs,
) -> Any:
    """
    Await ``func`` until it succeeds or the retries run out.

    Cancellation is never retried: ``asyncio.CancelledError`` is a
    BaseException and passes straight through.

    Args:
        func: Async function to call
        max_retries: Retries after the first attempt (default: 2)
        base_delay: Delay before the first retry in seconds (default: 1.0)
        max_delay: Upper bound of any single delay in seconds (default: 10.0)
        *args: Positional arguments to pass to func
        no_retry: Exception types raised immediately, e.g. configuration errors
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from func

    Raises:
        Exception: The error of the last attempt, or the first ``no_retry`` error
    """
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except no_retry:
            raise
        except Exception as e:
            if attempt >= max_retries:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            attempt += 1
            logger.warning(
                "Attempt %s of %s failed, retrying in %.1fs: %s",
                attempt,
                max_retries + 1,
                delay,
                e,
            )
            await asyncio.sleep(delay)
