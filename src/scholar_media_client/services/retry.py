"""Per-unit retry for object store calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from scholar_media_client.config import UploadConfig
from scholar_media_client.exceptions import DatabaseError, MinioError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (MinioError, asyncio.TimeoutError, OSError)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    attempt_timeout: Optional[float] = None,
    retry_on: tuple[type[BaseException], ...] = RETRYABLE_ERRORS,
) -> T:
    """Run ``operation`` up to ``max_attempts`` times.

    The pause before attempt ``n + 1`` is ``n * base_delay``. Each attempt is
    bounded by ``attempt_timeout`` on its own. The last error is re-raised
    unchanged so callers can wrap it with the failing unit.
    """

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await asyncio.wait_for(operation(), timeout=attempt_timeout)
    raise AssertionError("unreachable")  # pragma: no cover


async def store_call(operation: Callable[[], Awaitable[T]], config: UploadConfig) -> T:
    return await run_with_retry(
        operation,
        max_attempts=config.max_attempts,
        base_delay=config.base_delay,
        attempt_timeout=config.attempt_timeout,
    )


async def db_call(operation: Callable[[], Awaitable[T]], config: UploadConfig) -> T:
    return await run_with_retry(
        operation,
        max_attempts=config.max_attempts,
        base_delay=config.base_delay,
        retry_on=(DatabaseError,),
    )
