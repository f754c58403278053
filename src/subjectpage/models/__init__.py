from __future__ import annotations

from subjectpage.models.cache import CacheEntry
from subjectpage.models.challenge import Challenge
from subjectpage.models.options import FetchOptions

__all__ = [
    # cache
    "CacheEntry",
    # challenge
    "Challenge",
    # options
    "FetchOptions",
]
