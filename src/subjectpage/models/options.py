from __future__ import annotations

from pydantic import BaseModel, field_validator


class FetchOptions(BaseModel):
    """Per-call overrides for a scraper request.

    Every field left as ``None`` falls back to the scraper's ``Settings``.
    """

    cache_ttl_ms: int | None = None
    max_entries: int | None = None
    timeout_ms: int | None = None
    min_request_interval_ms: int | None = None
    random_delay_ms: tuple[int, int] | None = None
    headers: dict[str, str] = {}

    @field_validator("max_entries")
    @classmethod
    def validate_max_entries(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("max_entries must be >= 1")
        return v
