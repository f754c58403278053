"""Proof-of-work solver for the anti-automation challenge."""

from __future__ import annotations

import asyncio
import hashlib

import structlog

from subjectpage.errors import ErrorCode, SubjectFetchError

log = structlog.get_logger()

DEFAULT_DIFFICULTY = 4
DEFAULT_MAX_NONCE = 2_000_000


def solve_challenge(
    cha: str,
    difficulty: int = DEFAULT_DIFFICULTY,
    max_nonce: int = DEFAULT_MAX_NONCE,
) -> int:
    """Return the smallest nonce in ``[1, max_nonce]`` whose SHA-512 hex of
    ``cha + str(nonce)`` starts with ``difficulty`` zeros.

    CPU-bound and synchronous. Raises SubjectFetchError (status 403) when no
    nonce in range qualifies.
    """
    target_prefix = "0" * difficulty
    for nonce in range(1, max_nonce + 1):
        digest = hashlib.sha512(f"{cha}{nonce}".encode()).hexdigest()
        if digest.startswith(target_prefix):
            return nonce

    log.warning("challenge_solve_exhausted", difficulty=difficulty, max_nonce=max_nonce)
    raise SubjectFetchError(
        code=ErrorCode.CHALLENGE_SOLVE_FAILED,
        message=f"No proof-of-work nonce found within {max_nonce} attempts",
        status=403,
    )


async def solve_challenge_async(
    cha: str,
    difficulty: int = DEFAULT_DIFFICULTY,
    max_nonce: int = DEFAULT_MAX_NONCE,
    *,
    in_thread: bool = True,
) -> int:
    """Solve the challenge without blocking the event loop when ``in_thread`` is set."""
    if in_thread:
        return await asyncio.to_thread(solve_challenge, cha, difficulty, max_nonce)
    return solve_challenge(cha, difficulty, max_nonce)
