"""Retry classification and exponential backoff."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Collection

from .exceptions import CiosHTTPError, CiosNetworkError, CiosTimeoutError

DEFAULT_RETRY_DELAY = 1.0
DEFAULT_RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

Sleep = Callable[[float], Awaitable[object]]


def should_retry_error(error: BaseException, retry_status_codes: Collection[int] = ()) -> bool:
    """Return whether ``error`` may be recovered by another attempt."""

    if isinstance(error, (CiosNetworkError, CiosTimeoutError)):
        return True
    if isinstance(error, CiosHTTPError) and error.status_code is not None:
        if error.status_code in retry_status_codes:
            return True
        return 500 <= error.status_code < 600
    return False


def backoff_delay(retry_delay: float, configured_retries: int, remaining_retries: int) -> float:
    """Delay before the next attempt, doubling per attempt already consumed."""

    consumed = max(0, configured_retries - remaining_retries)
    return retry_delay * (2 ** consumed)


class RetryController:
    """Tracks the retry budget of one logical request at a time.

    ``sleep`` is the awaitable used for backoff waits.
    """

    def __init__(self, *, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    def should_retry(
        self,
        error: BaseException,
        *,
        remaining: int,
        retry_status_codes: Collection[int],
    ) -> bool:
        return remaining > 0 and should_retry_error(error, retry_status_codes)

    def delay(self, *, retry_delay: float, configured: int, remaining: int) -> float:
        return backoff_delay(retry_delay, configured, remaining)

    async def wait(self, delay: float) -> None:
        await self._sleep(delay)
