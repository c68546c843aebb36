"""
Edge policy for request handlers: retry transient failures, bound the total time.

Retries live here and only here. Embedders and stores fail fast and the
services never retry, so one request cannot multiply into nested retries.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from memory_merge.config import Settings
from memory_merge.errors import MemoryMergeError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exception: BaseException) -> bool:
    """Only EmbeddingError and StoreUnavailable are transient."""
    return isinstance(exception, MemoryMergeError) and exception.retryable


async def run_with_edge_policy(operation: Callable[[], Awaitable[T]], settings: Settings) -> T:
    """
    Run one pipeline call with backoff retries under a single timeout.

    With the default settings a transient failure is retried after 1s, 2s
    and 4s before it is surfaced.

    Raises:
        asyncio.TimeoutError: If the whole call (retries included) exceeds
            ``settings.request_timeout``
    """

    async def attempt() -> T:
        async for retry_attempt in AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(settings.retry_attempts + 1),
            wait=wait_exponential(
                multiplier=settings.retry_backoff_min,
                min=settings.retry_backoff_min,
                max=settings.retry_backoff_max,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with retry_attempt:
                return await operation()

    return await asyncio.wait_for(attempt(), timeout=settings.request_timeout)
