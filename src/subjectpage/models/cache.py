from __future__ import annotations

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """Cached HTML for a single subject id.

    Timestamps are clock seconds from the store's clock (monotonic by default).
    """

    html: str
    expires_at: float  # Entry is visible only while now < expires_at
    updated_at: float  # Recency marker for LRU eviction; refreshed on every hit
