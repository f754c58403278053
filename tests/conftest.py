"""Shared test fixtures for the subjectpage test suite."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from subjectpage.config import Settings


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    """Settings with pacing disabled and a cheap proof-of-work."""
    return Settings(
        fetch={"min_request_interval_ms": 0, "random_delay_ms": (0, 0)},
        challenge={"difficulty": 1, "solve_in_thread": False},
    )


CLEAN_HTML = "<html><head><title>Subject</title></head><body><h1>Subject</h1></body></html>"


def challenge_html(
    tok: str = "t",
    cha: str = "c",
    red: str = "/ok",
    action: str | None = None,
) -> str:
    """Build a challenge page with the three hidden fields."""
    action_attr = f' action="{action}"' if action is not None else ""
    return (
        "<html><body>"
        f'<form id="sec" method="POST"{action_attr}>'
        f'<input type="hidden" name="tok" value="{tok}">'
        f'<input type="hidden" name="cha" value="{cha}">'
        f'<input type="hidden" name="red" value="{red}">'
        "</form></body></html>"
    )


@pytest.fixture()
def clean_html() -> str:
    return CLEAN_HTML


@pytest.fixture()
def challenge_page() -> Callable[..., str]:
    """Factory for challenge pages: ``challenge_page(tok=..., cha=..., red=..., action=...)``."""
    return challenge_html
