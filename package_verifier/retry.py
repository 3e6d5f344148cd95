from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Final, TypeVar

from .errors import RateLimitError, is_retryable_error

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES: Final[int] = 3
BASE_DELAY_SECONDS: Final[float] = 1.0

SleepFn = Callable[[float], Awaitable[object]]


def backoff_delay(
    attempt: int, error: BaseException, *, base_delay: float = BASE_DELAY_SECONDS
) -> float:
    """Seconds to wait after failed ``attempt`` (0-based) before the next one."""
    if isinstance(error, RateLimitError) and error.retry_after is not None:
        return float(error.retry_after)
    return base_delay * (2**attempt)


async def execute_with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    *,
    sleep: SleepFn = asyncio.sleep,
    base_delay: float = BASE_DELAY_SECONDS,
) -> T:
    """Await ``fn()`` up to ``max_retries`` times in total.

    Non-retryable errors propagate on the first occurrence. Once the attempts
    are used up the most recent retryable error is raised.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable_error(exc):
                raise
            if attempt == max_retries - 1:
                log.warning(
                    "Giving up after %d attempts: %s", max_retries, exc
                )
                raise
            delay = backoff_delay(attempt, exc, base_delay=base_delay)
            log.warning(
                "Retryable error (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1,
                max_retries,
                delay,
                exc,
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = [
    "BASE_DELAY_SECONDS",
    "DEFAULT_MAX_RETRIES",
    "backoff_delay",
    "execute_with_retry",
]
