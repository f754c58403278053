"""Challenge resolution loop.

detect -> solve -> submit -> follow the result -> detect again, for at most
``max_rounds`` rounds. Cookies and Referer stay continuous across every
request in the loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlsplit

import structlog

from subjectpage.cookies import apply_set_cookies, get_set_cookie_headers
from subjectpage.errors import ErrorCode, SubjectFetchError
from subjectpage.fetcher import with_cookies
from subjectpage.headers import with_headers
from subjectpage.parser import parse_challenge
from subjectpage.solver import solve_challenge_async

if TYPE_CHECKING:
    import httpx

    from subjectpage.config import Settings
    from subjectpage.models.challenge import Challenge
    from subjectpage.protocols import FetcherProtocol

log = structlog.get_logger()


@dataclass
class ResolvedPage:
    """Challenge-free page reached by the resolution loop."""

    html: str
    url: str
    cookie_jar: dict[str, str]


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def submission_candidates(
    challenge: Challenge,
    page_url: str,
    *,
    submit_path: str,
    fallback_urls: list[str],
) -> list[str]:
    """Ordered, de-duplicated POST targets for a challenge on ``page_url``."""
    candidates = [
        urljoin(page_url, challenge.action or submit_path),
        urljoin(page_url, submit_path),
        *fallback_urls,
    ]
    return list(dict.fromkeys(candidates))


class ChallengeResolver:
    """Solves and submits challenges until a clean page is served."""

    def __init__(self, fetcher: FetcherProtocol, settings: Settings) -> None:
        self._fetcher = fetcher
        self._settings = settings

    async def resolve(
        self,
        html: str,
        url: str,
        headers: dict[str, str],
        cookie_jar: dict[str, str] | None = None,
    ) -> ResolvedPage:
        """Return the first challenge-free page, starting from ``html`` served at ``url``.

        Returns immediately when ``html`` carries no challenge.
        """
        jar = dict(cookie_jar or {})
        current_html = html
        current_url = url
        max_rounds = self._settings.challenge.max_rounds

        for attempt in range(1, max_rounds + 1):
            challenge = parse_challenge(current_html)
            if challenge is None:
                if attempt > 1:
                    log.info("challenge_resolved", url=current_url, rounds=attempt - 1)
                return ResolvedPage(html=current_html, url=current_url, cookie_jar=jar)

            log.info("challenge_detected", url=current_url, attempt=attempt)
            current_html, current_url = await self._run_round(
                challenge, current_url, headers, jar
            )

        if parse_challenge(current_html) is None:
            log.info("challenge_resolved", url=current_url, rounds=max_rounds)
            return ResolvedPage(html=current_html, url=current_url, cookie_jar=jar)

        log.warning("challenge_unresolved", url=current_url, rounds=max_rounds)
        raise SubjectFetchError(
            code=ErrorCode.CHALLENGE_UNRESOLVED,
            message=f"Challenge not resolved after {max_rounds} attempts",
            status=403,
        )

    async def _run_round(
        self,
        challenge: Challenge,
        page_url: str,
        headers: dict[str, str],
        jar: dict[str, str],
    ) -> tuple[str, str]:
        """Solve, submit and follow one challenge. Mutates ``jar``."""
        settings = self._settings
        timeout_ms = settings.fetch.challenge_timeout_ms

        nonce = await solve_challenge_async(
            challenge.cha,
            settings.challenge.difficulty,
            settings.challenge.max_nonce,
            in_thread=settings.challenge.solve_in_thread,
        )
        log.debug("challenge_solved", nonce=nonce)

        form = {
            "tok": challenge.tok,
            "cha": challenge.cha,
            "sol": str(nonce),
            "red": challenge.red,
        }
        post_headers = with_headers(
            headers,
            {
                "Origin": _origin(page_url),
                "Referer": page_url,
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )

        candidates = submission_candidates(
            challenge,
            page_url,
            submit_path=settings.site.submit_path,
            fallback_urls=settings.site.fallback_submit_urls,
        )
        post_url, post_response = await self._submit(
            candidates, form, post_headers, jar, timeout_ms
        )

        if not 200 <= post_response.status_code < 400:
            log.warning(
                "challenge_submit_failed", url=post_url, status_code=post_response.status_code
            )
            raise SubjectFetchError(
                code=ErrorCode.CHALLENGE_SUBMIT_FAILED,
                message=f"Challenge submission failed: HTTP {post_response.status_code}",
                status=post_response.status_code,
            )

        apply_set_cookies(jar, get_set_cookie_headers(post_response.headers))
        next_target = post_response.headers.get("location") or challenge.red
        next_url = urljoin(post_url, next_target)

        follow_headers = with_headers(headers, {"Origin": _origin(page_url), "Referer": page_url})
        result = await self._fetcher.fetch_with_redirects(next_url, follow_headers, timeout_ms, jar)
        jar.update(result.cookie_jar)

        follow_html = result.response.text
        if not result.response.is_success and parse_challenge(follow_html) is None:
            log.warning(
                "challenge_followup_failed",
                url=result.url,
                status_code=result.response.status_code,
            )
            raise SubjectFetchError(
                code=ErrorCode.CHALLENGE_FOLLOWUP_FAILED,
                message=f"Challenge follow-up failed: HTTP {result.response.status_code}",
                status=result.response.status_code,
            )

        return follow_html, result.url

    async def _submit(
        self,
        candidates: list[str],
        form: dict[str, str],
        headers: dict[str, str],
        jar: dict[str, str],
        timeout_ms: int,
    ) -> tuple[str, httpx.Response]:
        """POST the solution to each candidate until one answers with anything but 404."""
        for index, post_url in enumerate(candidates):
            response = await self._fetcher.fetch_with_timeout(
                "POST",
                post_url,
                headers=with_cookies(headers, jar),
                timeout_ms=timeout_ms,
                data=form,
            )
            if response.status_code != 404 or index == len(candidates) - 1:
                return post_url, response
            log.debug("challenge_submit_candidate_missing", url=post_url)

        raise RuntimeError("No challenge submission candidates")
