"""Browser-like request headers with a randomized browser identity."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlsplit

Browser = Literal["chrome", "edge", "firefox", "safari"]
Platform = Literal["Windows", "macOS", "Linux"]

# Headers that always come from the browser identity, never from callers
_IDENTITY_HEADERS = ("User-Agent", "Sec-CH-UA", "Sec-CH-UA-Mobile", "Sec-CH-UA-Platform")

_BRAND_VERSIONS: dict[Browser, tuple[str, str]] = {
    "chrome": ("Google Chrome", "131"),
    "edge": ("Microsoft Edge", "131"),
}


@dataclass(frozen=True)
class BrowserIdentity:
    user_agent: str
    browser: Browser
    platform: Platform


USER_AGENTS: tuple[BrowserIdentity, ...] = (
    BrowserIdentity(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "chrome",
        "Windows",
    ),
    BrowserIdentity(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "chrome",
        "macOS",
    ),
    BrowserIdentity(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "chrome",
        "Linux",
    ),
    BrowserIdentity(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        "edge",
        "Windows",
    ),
    BrowserIdentity(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
        "firefox",
        "Windows",
    ),
    BrowserIdentity(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.7; rv:133.0) Gecko/20100101 Firefox/133.0",
        "firefox",
        "macOS",
    ),
    BrowserIdentity(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/18.1 Safari/605.1.15",
        "safari",
        "macOS",
    ),
)


def random_identity() -> BrowserIdentity:
    return random.choice(USER_AGENTS)


def client_hint_headers(identity: BrowserIdentity) -> dict[str, str]:
    """Return ``Sec-CH-UA*`` headers for Chromium browsers; empty for the rest."""
    brand = _BRAND_VERSIONS.get(identity.browser)
    if brand is None:
        return {}
    name, major = brand
    return {
        "Sec-CH-UA": f'"{name}";v="{major}", "Chromium";v="{major}", "Not_A Brand";v="24"',
        "Sec-CH-UA-Mobile": "?0",
        "Sec-CH-UA-Platform": f'"{identity.platform}"',
    }


def _remove_header(headers: dict[str, str], name: str) -> None:
    target = name.lower()
    for key in [key for key in headers if key.lower() == target]:
        del headers[key]


def set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set ``name`` in place, dropping any existing spelling of it first."""
    _remove_header(headers, name)
    headers[name] = value


def with_headers(headers: dict[str, str], overrides: dict[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with ``overrides`` set case-insensitively."""
    result = dict(headers)
    for name, value in overrides.items():
        set_header(result, name, value)
    return result


def build_request_headers(
    target_url: str,
    *,
    accept_language: str,
    extra_headers: dict[str, str] | None = None,
    identity: BrowserIdentity | None = None,
) -> dict[str, str]:
    """Build the navigation header set for ``target_url``.

    ``extra_headers`` are merged on top, except for the identity headers
    (User-Agent and client hints) which always match the chosen identity.
    """
    identity = identity or random_identity()
    parts = urlsplit(target_url)
    origin = f"{parts.scheme}://{parts.netloc}"

    base: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/avif,image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": accept_language,
        "Accept-Encoding": "gzip, deflate, br",
        "Cache-Control": "max-age=0",
        "DNT": "1",
        **client_hint_headers(identity),
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "same-site",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
        "User-Agent": identity.user_agent,
        "Referer": f"{origin}/",
        "Origin": origin,
    }

    merged = dict(base)
    for name, value in (extra_headers or {}).items():
        set_header(merged, name, value)
    for name in _IDENTITY_HEADERS:
        _remove_header(merged, name)
        if name in base:
            merged[name] = base[name]
    return merged
