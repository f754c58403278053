"""Per-chain cookie jar handling.

A jar is a plain ``dict`` of cookie name to value. It lives for one fetch
chain only and is replayed through an explicit ``Cookie`` header; the shared
HTTP client never stores cookies itself.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

# Split a folded Set-Cookie header only at commas that start a new name=value
_SET_COOKIE_SPLIT_RE = re.compile(r",(?=[^;,]+=)")


def split_set_cookie_header(header: str) -> list[str]:
    """Split a comma-joined ``Set-Cookie`` value into individual cookies.

    Commas inside attributes such as ``Expires=Wed, 21 Oct 2015 ...`` are kept.
    """
    return [part.strip() for part in _SET_COOKIE_SPLIT_RE.split(header) if part.strip()]


def get_set_cookie_headers(headers: httpx.Headers) -> list[str]:
    """Return every ``Set-Cookie`` value, including ones folded into one header."""
    values = headers.get_list("set-cookie")
    if len(values) == 1:
        return split_set_cookie_header(values[0])
    return [value.strip() for value in values if value.strip()]


def apply_set_cookies(cookie_jar: dict[str, str], set_cookies: list[str]) -> None:
    """Merge ``name=value`` pairs into the jar. The last value for a name wins."""
    for set_cookie in set_cookies:
        pair = set_cookie.split(";", 1)[0].strip()
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        cookie_jar[name] = value.strip()


def build_cookie_header(cookie_jar: dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookie_jar.items())
