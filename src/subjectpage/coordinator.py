"""Single-flight coordination of concurrent fetches.

At most one fetch task exists per key. Callers arriving while it runs await
the same task and observe the same result or the same exception. The task
removes itself from the registry on every exit path.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = structlog.get_logger()


class RequestCoordinator:
    """In-flight registry keyed by cache key. Knows nothing about caching."""

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[str]] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    def get(self, key: str) -> asyncio.Future[str] | None:
        return self._inflight.get(key)

    def register(self, key: str, future: asyncio.Future[str]) -> None:
        if key in self._inflight:
            raise RuntimeError(f"A fetch for {key!r} is already in flight")
        self._inflight[key] = future

    def release(self, key: str) -> None:
        self._inflight.pop(key, None)

    async def run(self, key: str, factory: Callable[[], Awaitable[str]]) -> str:
        """Join the in-flight fetch for ``key`` or start one with ``factory``."""
        existing = self.get(key)
        if existing is not None:
            log.debug("inflight_joined", key=key)
            # Shielded: a cancelled caller must not cancel the shared fetch
            return await asyncio.shield(existing)

        async def _run_then_release() -> str:
            try:
                return await factory()
            finally:
                self.release(key)

        task = asyncio.create_task(_run_then_release())
        task.add_done_callback(lambda done: _collect_outcome(key, done))
        self.register(key, task)
        return await asyncio.shield(task)


def _collect_outcome(key: str, task: asyncio.Future[str]) -> None:
    # Retrieves the exception even when every waiter was cancelled
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.warning("inflight_failed", key=key, error=str(exc))
