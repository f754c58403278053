"""Protocol interfaces for swappable components.

The scraper references these protocols, not the concrete implementations.
This allows:
- Tests to use lightweight fakes with controllable behaviour
- A shared or out-of-process cache to be swapped in without touching the scraper
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import httpx

    from subjectpage.fetcher import FetchResult
    from subjectpage.models.cache import CacheEntry


class CacheProtocol(Protocol):
    """Interface for the subject HTML cache."""

    def get(self, key: str) -> CacheEntry | None: ...

    def set(
        self,
        key: str,
        html: str,
        ttl_ms: int,
        *,
        max_entries: int | None = None,
    ) -> None: ...

    def prune_expired(self) -> int: ...


class FetcherProtocol(Protocol):
    """Interface for the low-level HTTP fetcher."""

    async def fetch_with_timeout(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        timeout_ms: int,
        data: dict[str, str] | None = None,
    ) -> httpx.Response: ...

    async def fetch_with_redirects(
        self,
        url: str,
        headers: dict[str, str],
        timeout_ms: int,
        cookie_jar: dict[str, str] | None = None,
    ) -> FetchResult: ...
