"""In-memory subject HTML cache with TTL expiry and approximate-LRU eviction.

Expired entries are pruned lazily by a full scan on every read. Reads refresh
the recency marker but never extend the TTL. Capacity is enforced after each
write by dropping the entries with the oldest recency marker.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from subjectpage.models.cache import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

DEFAULT_MAX_ENTRIES = 200


class CacheStore:
    """Process-memory cache implementing CacheProtocol. Performs no I/O."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self._clock = clock
        # Insertion order mirrors recency: hits and writes re-insert at the end.
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` and refresh its recency, or ``None``."""
        now = self._clock()
        self._prune(now)

        entry = self._entries.pop(key, None)
        if entry is None:
            return None

        refreshed = entry.model_copy(update={"updated_at": now})
        self._entries[key] = refreshed
        return refreshed

    def set(
        self,
        key: str,
        html: str,
        ttl_ms: int,
        *,
        max_entries: int | None = None,
    ) -> None:
        """Store ``html`` under ``key``. A non-positive TTL disables caching."""
        if ttl_ms <= 0:
            return

        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            html=html,
            expires_at=now + ttl_ms / 1000,
            updated_at=now,
        )
        self._evict_if_needed(max_entries if max_entries is not None else self.max_entries)

    def prune_expired(self) -> int:
        """Drop every entry whose expiry has passed. Returns the number removed."""
        return self._prune(self._clock())

    def _prune(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug("cache_pruned", removed=len(expired))
        return len(expired)

    def _evict_if_needed(self, max_entries: int) -> None:
        excess = len(self._entries) - max_entries
        if excess <= 0:
            return

        # sorted() is stable, so ties fall back to insertion (recency) order
        oldest = sorted(self._entries.items(), key=lambda item: item[1].updated_at)
        for key, _entry in oldest[:excess]:
            del self._entries[key]
            log.debug("cache_evicted", key=key)
