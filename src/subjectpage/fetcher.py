"""Low-level HTTP fetching with per-request deadlines and manual redirects.

All network I/O goes through a single HttpFetcher built around a shared
httpx.AsyncClient. The client never follows redirects and never keeps
cookies; both are handled here so that each fetch chain carries its own jar.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from http.cookiejar import Cookie, CookieJar, DefaultCookiePolicy
from urllib.parse import urljoin

import httpx
import structlog

from subjectpage.cookies import apply_set_cookies, build_cookie_header, get_set_cookie_headers
from subjectpage.errors import ErrorCode, SubjectFetchError
from subjectpage.headers import with_headers

log = structlog.get_logger()

REDIRECT_STATUSES: frozenset[int] = frozenset({301, 302, 303, 307, 308})
DEFAULT_MAX_REDIRECTS = 3


class _RejectAllCookiesPolicy(DefaultCookiePolicy):
    """Keeps the shared client's jar empty; cookies travel per chain instead."""

    def set_ok(self, cookie: Cookie, request: object) -> bool:
        return False


def build_http_client() -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=False,
        # Per-request deadlines are enforced by HttpFetcher; this is a backstop.
        timeout=httpx.Timeout(60.0),
        cookies=CookieJar(policy=_RejectAllCookiesPolicy()),
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


@dataclass
class FetchResult:
    """Outcome of a redirect-following fetch chain."""

    response: httpx.Response
    url: str  # URL that produced ``response``
    cookie_jar: dict[str, str] = field(default_factory=dict)


def with_cookies(headers: dict[str, str], cookie_jar: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` carrying the jar as a ``Cookie`` header."""
    cookie_header = build_cookie_header(cookie_jar)
    if not cookie_header:
        return dict(headers)
    return with_headers(headers, {"Cookie": cookie_header})


class HttpFetcher:
    """HTTP fetcher implementing FetcherProtocol."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ) -> None:
        self._client = client
        self.max_redirects = max_redirects

    async def fetch_with_timeout(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        timeout_ms: int,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Issue one request, cancelled if it has not completed within ``timeout_ms``.

        A non-positive ``timeout_ms`` disables the deadline. Transport failures
        are raised as SubjectFetchError; HTTP error statuses are returned.
        """
        deadline = timeout_ms / 1000 if timeout_ms > 0 else None
        try:
            async with asyncio.timeout(deadline):
                return await self._client.request(method, url, headers=headers, data=data)
        except (TimeoutError, httpx.TimeoutException) as exc:
            log.warning("fetch_timeout", url=url, method=method, timeout_ms=timeout_ms)
            raise SubjectFetchError(
                code=ErrorCode.TIMEOUT,
                message=f"{method} {url} timed out after {timeout_ms} ms",
            ) from exc
        except httpx.HTTPError as exc:
            log.warning("fetch_network_error", url=url, method=method, error=str(exc))
            raise SubjectFetchError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error fetching {url}: {exc}",
            ) from exc

    async def fetch_with_redirects(
        self,
        url: str,
        headers: dict[str, str],
        timeout_ms: int,
        cookie_jar: dict[str, str] | None = None,
    ) -> FetchResult:
        """GET ``url`` following up to ``max_redirects`` redirects by hand.

        Every response's Set-Cookie values are merged into the chain's jar and
        replayed on the next hop. When the hop budget runs out the last
        response is returned as-is.
        """
        jar = dict(cookie_jar or {})
        current_url = url

        response = await self.fetch_with_timeout(
            "GET", current_url, headers=with_cookies(headers, jar), timeout_ms=timeout_ms
        )
        apply_set_cookies(jar, get_set_cookie_headers(response.headers))

        for _hop in range(self.max_redirects):
            if response.status_code not in REDIRECT_STATUSES:
                break
            location = response.headers.get("location")
            if not location:
                break

            next_url = urljoin(current_url, location)
            log.debug(
                "redirect_followed",
                status_code=response.status_code,
                from_url=current_url,
                to_url=next_url,
            )
            hop_headers = with_cookies(with_headers(headers, {"Referer": current_url}), jar)
            response = await self.fetch_with_timeout(
                "GET", next_url, headers=hop_headers, timeout_ms=timeout_ms
            )
            apply_set_cookies(jar, get_set_cookie_headers(response.headers))
            current_url = next_url
        else:
            if response.status_code in REDIRECT_STATUSES:
                log.info(
                    "redirect_limit_reached", url=current_url, max_redirects=self.max_redirects
                )

        return FetchResult(response=response, url=current_url, cookie_jar=jar)
