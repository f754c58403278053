"""subjectpage: cached, challenge-aware retrieval of subject HTML pages.

    async with open_scraper() as scraper:
        html = await scraper.get_html("1292052")
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from subjectpage.config import Settings
from subjectpage.errors import ErrorCode, SubjectFetchError
from subjectpage.models import FetchOptions
from subjectpage.scraper import (
    SubjectPageScraper,
    is_site_url,
    normalize_subject_url,
    open_scraper,
)

try:
    __version__ = version("subjectpage")
except PackageNotFoundError:
    # Source checkout without installed metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    "ErrorCode",
    "FetchOptions",
    "Settings",
    "SubjectFetchError",
    "SubjectPageScraper",
    "__version__",
    "is_site_url",
    "normalize_subject_url",
    "open_scraper",
]
