"""Outbound request pacing: a minimum spacing plus a random jitter delay.

One RateLimiter tracks a single "last request" timestamp for every request it
paces, regardless of which subject is being fetched. Share one instance to
make unrelated fetches queue behind each other; give each scraper its own to
pace them independently.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()


class RateLimiter:
    """Enforces a minimum interval between requests, then sleeps a random jitter."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last_request_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_request_at(self) -> float | None:
        return self._last_request_at

    async def wait_for_interval(self, min_interval_ms: int) -> float:
        """Sleep until ``min_interval_ms`` has passed since the previous request.

        Returns the number of seconds slept. Concurrent callers queue on a lock
        so each one is spaced from the one before it.
        """
        if min_interval_ms <= 0:
            return 0.0

        async with self._lock:
            waited = 0.0
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                remaining = min_interval_ms / 1000 - elapsed
                if remaining > 0:
                    log.debug("rate_limit_wait", seconds=round(remaining, 3))
                    await asyncio.sleep(remaining)
                    waited = remaining
            self._last_request_at = self._clock()
            return waited

    async def random_delay(self, min_ms: int, max_ms: int) -> float:
        """Sleep a whole number of milliseconds drawn uniformly from [min_ms, max_ms]."""
        if min_ms <= 0 and max_ms <= 0:
            return 0.0
        safe_min = max(0, min_ms)
        safe_max = max(safe_min, max_ms)
        delay = random.randint(safe_min, safe_max) / 1000
        if delay > 0:
            await asyncio.sleep(delay)
        return delay

    async def throttle(self, min_interval_ms: int, random_delay_ms: tuple[int, int]) -> None:
        """Apply the interval wait and then the jitter delay before a request."""
        await self.wait_for_interval(min_interval_ms)
        await self.random_delay(*random_delay_ms)
