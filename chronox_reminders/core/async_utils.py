"""Timeout and retry helpers for calls into external collaborators.

The notification scheduler and the key-value store are async boundaries that
may stall or fail transiently. These helpers bound each call in time and retry
with exponential backoff, so a single slow platform call cannot hang a sync.

Usage Example:
    ```python
    result = await run_with_timeout(scheduler.list_all_scheduled_notifications(), 10.0)

    handle = await retry_async(
        lambda: scheduler.schedule_notification(content, 3600),
        max_retries=2,
        backoff=0.5,
    )
    ```
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from .exceptions import SchedulerRetryExhaustedError, SchedulerTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_timeout(coro: Awaitable[T], timeout: Optional[float]) -> T:
    """Run an awaitable with a timeout.

    Args:
        coro: Awaitable to execute
        timeout: Timeout in seconds; None waits indefinitely

    Returns:
        The awaitable's result

    Raises:
        SchedulerTimeoutError: If the timeout elapses first
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        logger.warning("Operation timed out after %.1fs", timeout or 0.0)
        raise SchedulerTimeoutError(f"Operation exceeded timeout of {timeout}s") from e


async def retry_async(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    backoff: float = 0.5,
    backoff_multiplier: float = 2.0,
    max_backoff: float = 10.0,
    retry_on: Optional[tuple[type[Exception], ...]] = None,
) -> T:
    """Retry an async function with exponential backoff.

    Args:
        coro_func: Function that returns a fresh awaitable per attempt
        max_retries: Maximum number of retry attempts after the first
        backoff: Initial backoff delay in seconds
        backoff_multiplier: Multiplier for exponential backoff
        max_backoff: Maximum backoff delay in seconds
        retry_on: Exception types to retry on (None = retry all)

    Returns:
        Function result

    Raises:
        SchedulerRetryExhaustedError: If all attempts fail
    """
    last_exception: Optional[Exception] = None
    current_backoff = backoff

    for attempt in range(max_retries + 1):
        try:
            result = await coro_func()
            if attempt > 0:
                logger.info("Operation succeeded on attempt %d/%d", attempt + 1, max_retries + 1)
            return result
        except Exception as e:
            last_exception = e

            if retry_on is not None and not isinstance(e, retry_on):
                logger.debug("Not retrying exception type %s", type(e).__name__)
                raise

            if attempt >= max_retries:
                logger.warning("Retry exhausted after %d attempts: %s", max_retries + 1, e)
                break

            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt + 1,
                max_retries + 1,
                e,
                current_backoff,
            )

            await asyncio.sleep(current_backoff)
            current_backoff = min(current_backoff * backoff_multiplier, max_backoff)

    raise SchedulerRetryExhaustedError(
        f"Operation failed after {max_retries + 1} attempts: {last_exception}"
    ) from last_exception
