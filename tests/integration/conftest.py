"""Integration test fixtures.

Provides a fully wired SubjectPageScraper around a real (respx-mocked) httpx
client with pacing disabled and a fake clock. Settings and page builders come
from tests/conftest.py.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import pytest

from subjectpage.fetcher import build_http_client
from subjectpage.scraper import SubjectPageScraper

if TYPE_CHECKING:
    from subjectpage.config import Settings
    from tests.conftest import FakeClock

SUBJECT_URL = "https://movie.douban.com/subject/{id}/"


@pytest.fixture()
async def scraper(settings: Settings, clock: FakeClock) -> AsyncIterator[SubjectPageScraper]:
    """Scraper with no request pacing, a cheap challenge and a controllable clock."""
    async with build_http_client() as client:
        yield SubjectPageScraper(client, settings, clock=clock)
