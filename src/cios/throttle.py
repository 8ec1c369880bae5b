"""Per-host departure spacing for idempotent reads."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_INTERVAL = 0.1
DEFAULT_THROTTLE_METHODS = frozenset({"GET"})


class HostThrottle:
    """Fixed-interval gate keyed by host.

    Each host maps to the monotonic time at which the next request may depart.
    A request waits until that time has passed and then installs its own
    deadline; the final check and the install happen without a suspension
    point in between, so two waiters never both take the gate.

    Expiry is lazy: a host whose window has passed behaves as unthrottled
    straight away, but its entry is only dropped on the next ``acquire`` or
    ``throttled_hosts`` read.
    """

    def __init__(
        self,
        interval: float = DEFAULT_THROTTLE_INTERVAL,
        methods: Iterable[str] = DEFAULT_THROTTLE_METHODS,
    ) -> None:
        if interval < 0:
            raise ValueError("throttle interval must be non-negative")
        self.interval = float(interval)
        self.methods = frozenset(method.upper() for method in methods)
        self._release_at: dict[str, float] = {}

    def applies_to(self, method: str) -> bool:
        return self.interval > 0 and method.upper() in self.methods

    @property
    def throttled_hosts(self) -> list[str]:
        self._prune(time.monotonic())
        return list(self._release_at)

    async def acquire(self, host: str, method: str) -> float:
        """Wait until ``host`` may be contacted again.

        Returns:
            Seconds spent waiting.
        """

        if not self.applies_to(method):
            return 0.0
        key = host.lower()
        started = time.monotonic()
        while True:
            now = time.monotonic()
            release_at = self._release_at.get(key)
            if release_at is None or release_at <= now:
                break
            logger.debug("throttling %s for %.3fs", key, release_at - now)
            await asyncio.sleep(release_at - now)
        self._prune(now)
        self._release_at[key] = now + self.interval
        return now - started

    def _prune(self, now: float) -> None:
        expired = [host for host, release_at in self._release_at.items() if release_at <= now]
        for host in expired:
            del self._release_at[host]
