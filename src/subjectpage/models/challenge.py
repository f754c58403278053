from __future__ import annotations

from pydantic import BaseModel


class Challenge(BaseModel):
    """Anti-automation challenge parsed out of one HTML response."""

    tok: str
    cha: str  # Proof-of-work input
    red: str  # Redirect target after a successful submission
    action: str | None = None  # Form submission target, as written in the page
