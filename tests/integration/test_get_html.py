"""End-to-end tests for SubjectPageScraper.get_html against mocked HTTP routes."""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Callable
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from subjectpage.config import Settings
from subjectpage.errors import ErrorCode, SubjectFetchError
from subjectpage.fetcher import build_http_client
from subjectpage.models.options import FetchOptions
from subjectpage.scraper import SubjectPageScraper, open_scraper

if TYPE_CHECKING:
    from tests.conftest import FakeClock

URL_12345 = "https://movie.douban.com/subject/12345/"
URL_67890 = "https://movie.douban.com/subject/67890/"


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    async def test_clean_page_no_post(self, scraper: SubjectPageScraper, clean_html: str) -> None:
        with respx.mock(assert_all_called=False) as respx_mock:
            page = respx_mock.get(URL_12345).mock(return_value=httpx.Response(200, text=clean_html))
            post = respx_mock.post(url__regex=r".*")
            html = await scraper.get_html("12345")
            assert post.call_count == 0
        assert html == clean_html
        assert page.call_count == 1

    async def test_challenge_resolved_with_one_post(
        self, clean_html: str, challenge_page: Callable[..., str]
    ) -> None:
        # Real difficulty: the proof-of-work runs in a worker thread
        settings = Settings(fetch={"min_request_interval_ms": 0, "random_delay_ms": (0, 0)})
        with respx.mock:
            respx.get(URL_67890).mock(
                return_value=httpx.Response(403, text=challenge_page(tok="t", cha="c", red="/ok"))
            )
            post = respx.post("https://movie.douban.com/c").mock(
                return_value=httpx.Response(302, headers={"location": "/ok"})
            )
            respx.get("https://movie.douban.com/ok").mock(
                return_value=httpx.Response(200, text=clean_html)
            )
            async with open_scraper(settings) as scraper:
                html = await scraper.get_html("67890")

        assert html == clean_html
        assert post.call_count == 1
        form = parse_qs(post.calls.last.request.content.decode())
        assert hashlib.sha512(f"c{form['sol'][0]}".encode()).hexdigest().startswith("0000")

    async def test_primary_error_without_challenge(self, scraper: SubjectPageScraper) -> None:
        with respx.mock:
            respx.get(URL_12345).mock(return_value=httpx.Response(500, text="oops"))
            with pytest.raises(SubjectFetchError) as exc_info:
                await scraper.get_html("12345")
        assert exc_info.value.code == ErrorCode.FETCH_FAILED
        assert exc_info.value.status == 500

    async def test_challenge_on_ok_response_is_resolved(
        self,
        scraper: SubjectPageScraper,
        clean_html: str,
        challenge_page: Callable[..., str],
    ) -> None:
        with respx.mock:
            respx.get(URL_12345).mock(return_value=httpx.Response(200, text=challenge_page()))
            respx.post("https://movie.douban.com/c").mock(return_value=httpx.Response(302))
            respx.get("https://movie.douban.com/ok").mock(
                return_value=httpx.Response(200, text=clean_html)
            )
            assert await scraper.get_html("12345") == clean_html

    async def test_endless_challenge_fails_after_three_rounds(
        self, scraper: SubjectPageScraper, challenge_page: Callable[..., str]
    ) -> None:
        with respx.mock:
            respx.get(URL_12345).mock(return_value=httpx.Response(403, text=challenge_page()))
            post = respx.post("https://movie.douban.com/c").mock(
                return_value=httpx.Response(302, headers={"location": "/ok"})
            )
            respx.get("https://movie.douban.com/ok").mock(
                return_value=httpx.Response(403, text=challenge_page())
            )
            with pytest.raises(SubjectFetchError) as exc_info:
                await scraper.get_html("12345")
        assert exc_info.value.status == 403
        assert post.call_count == 3

    async def test_redirect_cookies_reach_submission(
        self,
        scraper: SubjectPageScraper,
        clean_html: str,
        challenge_page: Callable[..., str],
    ) -> None:
        with respx.mock:
            respx.get("https://sec.douban.com/check").mock(
                return_value=httpx.Response(403, text=challenge_page(action="/c"))
            )
            post = respx.post("https://sec.douban.com/c").mock(
                return_value=httpx.Response(
                    302, headers={"location": URL_12345, "set-cookie": "ck=ok"}
                )
            )
            respx.get(URL_12345).mock(
                side_effect=[
                    httpx.Response(
                        302,
                        headers={
                            "location": "https://sec.douban.com/check",
                            "set-cookie": "bid=abc",
                        },
                    ),
                    httpx.Response(200, text=clean_html),
                ]
            )
            html = await scraper.get_html("12345")

        assert html == clean_html
        assert post.calls.last.request.headers["cookie"] == "bid=abc"
        assert post.calls.last.request.headers["referer"] == "https://sec.douban.com/check"


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    async def test_cache_hit_avoids_network(
        self, scraper: SubjectPageScraper, clean_html: str
    ) -> None:
        with respx.mock:
            route = respx.get(URL_12345).mock(return_value=httpx.Response(200, text=clean_html))
            first = await scraper.get_html("12345")
            second = await scraper.get_html(" 12345 ")
        assert first == second == clean_html
        assert route.call_count == 1

    async def test_ttl_expiry_refetches(
        self, scraper: SubjectPageScraper, clock: FakeClock
    ) -> None:
        options = FetchOptions(cache_ttl_ms=60_000)
        with respx.mock:
            route = respx.get(URL_12345).mock(
                side_effect=[
                    httpx.Response(200, text="<p>old</p>"),
                    httpx.Response(200, text="<p>new</p>"),
                ]
            )
            assert await scraper.get_html("12345", options) == "<p>old</p>"
            clock.advance(30)
            assert await scraper.get_html("12345", options) == "<p>old</p>"
            clock.advance(31)
            assert await scraper.get_html("12345", options) == "<p>new</p>"
        assert route.call_count == 2

    async def test_zero_ttl_disables_caching(
        self, scraper: SubjectPageScraper, clean_html: str
    ) -> None:
        options = FetchOptions(cache_ttl_ms=0)
        with respx.mock:
            route = respx.get(URL_12345).mock(return_value=httpx.Response(200, text=clean_html))
            await scraper.get_html("12345", options)
            await scraper.get_html("12345", options)
        assert route.call_count == 2

    async def test_lru_eviction_across_subjects(
        self, scraper: SubjectPageScraper, clock: FakeClock
    ) -> None:
        options = FetchOptions(max_entries=2)
        with respx.mock:
            routes = {
                sid: respx.get(f"https://movie.douban.com/subject/{sid}/").mock(
                    return_value=httpx.Response(200, text=f"<p>{sid}</p>")
                )
                for sid in ["1", "2", "3"]
            }
            for sid in ["1", "2", "3"]:
                await scraper.get_html(sid, options)
                clock.advance(1)
            # "1" was evicted; "2" and "3" are still cached
            await scraper.get_html("3", options)
            await scraper.get_html("2", options)
            await scraper.get_html("1", options)
        assert routes["1"].call_count == 2
        assert routes["2"].call_count == 1
        assert routes["3"].call_count == 1

    async def test_failure_not_cached(
        self, scraper: SubjectPageScraper, clean_html: str
    ) -> None:
        with respx.mock:
            route = respx.get(URL_12345).mock(
                side_effect=[httpx.Response(503), httpx.Response(200, text=clean_html)]
            )
            with pytest.raises(SubjectFetchError):
                await scraper.get_html("12345")
            assert await scraper.get_html("12345") == clean_html
        assert route.call_count == 2


# ---------------------------------------------------------------------------
# Single-flight
# ---------------------------------------------------------------------------


class TestSingleFlight:
    async def test_concurrent_calls_share_one_fetch(
        self, scraper: SubjectPageScraper, clean_html: str
    ) -> None:
        with respx.mock:
            route = respx.get(URL_12345).mock(return_value=httpx.Response(200, text=clean_html))
            results = await asyncio.gather(*(scraper.get_html("12345") for _ in range(10)))
        assert route.call_count == 1
        assert results == [clean_html] * 10
        assert len(scraper.coordinator) == 0

    async def test_concurrent_calls_share_one_failure(self, scraper: SubjectPageScraper) -> None:
        with respx.mock:
            route = respx.get(URL_12345).mock(return_value=httpx.Response(500))
            results = await asyncio.gather(
                *(scraper.get_html("12345") for _ in range(5)), return_exceptions=True
            )
        assert route.call_count == 1
        assert all(isinstance(result, SubjectFetchError) for result in results)
        assert len({id(result) for result in results}) == 1
        assert len(scraper.coordinator) == 0

    async def test_timeout_surfaces_to_all_callers(self, scraper: SubjectPageScraper) -> None:
        with respx.mock:
            route = respx.get(URL_12345).mock(side_effect=httpx.ConnectTimeout("slow"))
            results = await asyncio.gather(
                *(scraper.get_html("12345") for _ in range(3)), return_exceptions=True
            )
        assert route.call_count == 1
        assert all(
            isinstance(result, SubjectFetchError) and result.code == ErrorCode.TIMEOUT
            for result in results
        )


# ---------------------------------------------------------------------------
# Options and pacing
# ---------------------------------------------------------------------------


class TestOptions:
    async def test_extra_headers_sent(self, scraper: SubjectPageScraper, clean_html: str) -> None:
        options = FetchOptions(headers={"X-Trace": "abc", "User-Agent": "curl/8.0"})
        with respx.mock:
            route = respx.get(URL_12345).mock(return_value=httpx.Response(200, text=clean_html))
            await scraper.get_html("12345", options)
        request = route.calls.last.request
        assert request.headers["x-trace"] == "abc"
        assert request.headers["user-agent"] != "curl/8.0"
        assert request.headers["referer"] == "https://movie.douban.com/"

    async def test_rate_limiter_shared_between_subjects(self, clean_html: str) -> None:
        settings = Settings(fetch={"min_request_interval_ms": 1_000, "random_delay_ms": (0, 0)})
        sleeps: list[float] = []

        async def fake_sleep(duration: float) -> None:
            sleeps.append(duration)

        with respx.mock:
            respx.get(url__regex=r"https://movie\.douban\.com/subject/\d+/").mock(
                return_value=httpx.Response(200, text=clean_html)
            )
            async with build_http_client() as client:
                scraper = SubjectPageScraper(client, settings, clock=lambda: 0.0)
                with pytest.MonkeyPatch.context() as mp:
                    mp.setattr("asyncio.sleep", fake_sleep)
                    await scraper.get_html("1")
                    await scraper.get_html("2")
        assert sleeps == [1.0]
