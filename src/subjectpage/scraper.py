"""Subject page scraper: the public entry point.

Composes the cache, the single-flight coordinator, the rate limiter, the HTTP
fetcher and the challenge resolver. One instance owns all shared state; build
it once at startup (or per test) and pass it to whoever needs pages.
"""

from __future__ import annotations

import re
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import structlog

from subjectpage.cache import CacheStore
from subjectpage.config import Settings, SiteSettings
from subjectpage.coordinator import RequestCoordinator
from subjectpage.errors import ErrorCode, SubjectFetchError
from subjectpage.fetcher import HttpFetcher, build_http_client
from subjectpage.headers import build_request_headers
from subjectpage.models.options import FetchOptions
from subjectpage.parser import parse_challenge
from subjectpage.ratelimit import RateLimiter
from subjectpage.resolver import ChallengeResolver

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    import httpx

    from subjectpage.protocols import CacheProtocol

log = structlog.get_logger()

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
_INSPECT_STATUSES = frozenset({403, 429})


def normalize_subject_url(value: str, site: SiteSettings | None = None) -> str:
    """Turn a subject id into its page URL. Absolute http(s) URLs pass through."""
    site = site or SiteSettings()
    trimmed = value.strip()
    if _ABSOLUTE_URL_RE.match(trimmed):
        return trimmed
    subject_id = trimmed.rstrip("/")
    return site.base_url + site.subject_path.format(id=subject_id)


def is_site_url(value: str, site: SiteSettings | None = None) -> bool:
    """True when ``value`` is a URL on one of the site's domains."""
    site = site or SiteSettings()
    try:
        hostname = (urlsplit(value).hostname or "").lower()
    except ValueError:
        return False
    if not hostname:
        return False
    return any(hostname.endswith(domain.lower()) for domain in site.domains)


class SubjectPageScraper:
    """Cached, single-flight, challenge-aware subject page retrieval."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        cache: CacheProtocol | None = None,
        coordinator: RequestCoordinator | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.fetcher = HttpFetcher(client, max_redirects=self.settings.fetch.max_redirects)
        self.resolver = ChallengeResolver(self.fetcher, self.settings)
        self.cache: CacheProtocol = cache or CacheStore(
            max_entries=self.settings.cache.max_entries, clock=clock
        )
        self.coordinator = coordinator or RequestCoordinator()
        # Shared by every key this scraper fetches, not per key
        self.rate_limiter = rate_limiter or RateLimiter(clock=clock)

    async def get_html(self, subject_id: str, options: FetchOptions | None = None) -> str:
        """Return the subject page HTML, from cache when live.

        Concurrent calls for the same id share one network chain and observe
        the same result or the same SubjectFetchError.
        """
        options = options or FetchOptions()
        key = subject_id.strip()
        if not key:
            raise SubjectFetchError(
                code=ErrorCode.INVALID_INPUT,
                message="Subject id must not be empty",
            )

        self.cache.prune_expired()
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("cache_hit", subject_id=key)
            return cached.html

        return await self.coordinator.run(key, lambda: self._fetch_and_cache(key, options))

    async def fetch_with_anti_scraping(
        self, url: str, options: FetchOptions | None = None
    ) -> httpx.Response:
        """Fetch any site URL (or subject id), clearing a challenge if one is served.

        Responses that are neither HTML nor 403/429 are returned untouched.
        After a challenge is resolved the original target is fetched again
        with the resolved cookies. Nothing is cached.
        """
        options = options or FetchOptions()
        await self._throttle(options)

        target = normalize_subject_url(url, self.settings.site)
        headers = self._headers_for(target, options)
        timeout_ms = self._timeout_ms(options)
        result = await self.fetcher.fetch_with_redirects(target, headers, timeout_ms)

        content_type = result.response.headers.get("content-type", "")
        should_inspect = (
            any(kind in content_type for kind in _HTML_CONTENT_TYPES)
            or result.response.status_code in _INSPECT_STATUSES
        )
        if not should_inspect or parse_challenge(result.response.text) is None:
            return result.response

        resolved = await self.resolver.resolve(
            result.response.text, result.url, headers, result.cookie_jar
        )
        final = await self.fetcher.fetch_with_redirects(
            target, headers, timeout_ms, resolved.cookie_jar
        )
        return final.response

    async def _fetch_and_cache(self, key: str, options: FetchOptions) -> str:
        html = await self._fetch_html(key, options)
        ttl_ms = (
            options.cache_ttl_ms if options.cache_ttl_ms is not None else self.settings.cache.ttl_ms
        )
        self.cache.set(key, html, ttl_ms, max_entries=options.max_entries)
        return html

    async def _fetch_html(self, key: str, options: FetchOptions) -> str:
        fetch_log = log.bind(subject_id=key)
        await self._throttle(options)

        target = normalize_subject_url(key, self.settings.site)
        headers = self._headers_for(target, options)
        result = await self.fetcher.fetch_with_redirects(
            target, headers, self._timeout_ms(options)
        )

        html = result.response.text
        if not result.response.is_success and parse_challenge(html) is None:
            fetch_log.warning("fetch_failed", status_code=result.response.status_code)
            raise SubjectFetchError(
                code=ErrorCode.FETCH_FAILED,
                message=f"Subject request failed: HTTP {result.response.status_code}",
                status=result.response.status_code,
            )

        resolved = await self.resolver.resolve(html, result.url, headers, result.cookie_jar)
        fetch_log.info(
            "fetch_complete",
            url=resolved.url,
            status_code=result.response.status_code,
            content_length=len(resolved.html),
        )
        return resolved.html

    async def _throttle(self, options: FetchOptions) -> None:
        fetch = self.settings.fetch
        min_interval_ms = (
            options.min_request_interval_ms
            if options.min_request_interval_ms is not None
            else fetch.min_request_interval_ms
        )
        random_delay_ms = (
            options.random_delay_ms
            if options.random_delay_ms is not None
            else fetch.random_delay_ms
        )
        await self.rate_limiter.throttle(min_interval_ms, random_delay_ms)

    def _timeout_ms(self, options: FetchOptions) -> int:
        if options.timeout_ms is not None:
            return options.timeout_ms
        return self.settings.fetch.timeout_ms

    def _headers_for(self, target: str, options: FetchOptions) -> dict[str, str]:
        return build_request_headers(
            target,
            accept_language=self.settings.site.accept_language,
            extra_headers=options.headers,
        )


@asynccontextmanager
async def open_scraper(
    settings: Settings | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
) -> AsyncGenerator[SubjectPageScraper, None]:
    """Build a scraper around a fresh shared client; the client closes on exit."""
    async with build_http_client() as client:
        yield SubjectPageScraper(client, settings, rate_limiter=rate_limiter)
