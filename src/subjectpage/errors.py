from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    FETCH_FAILED = "FETCH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CHALLENGE_SOLVE_FAILED = "CHALLENGE_SOLVE_FAILED"
    CHALLENGE_SUBMIT_FAILED = "CHALLENGE_SUBMIT_FAILED"
    CHALLENGE_FOLLOWUP_FAILED = "CHALLENGE_FOLLOWUP_FAILED"
    CHALLENGE_UNRESOLVED = "CHALLENGE_UNRESOLVED"


class SubjectFetchError(Exception):
    """Raised for every failure of a subject page retrieval.

    Carries the HTTP status of the response that caused the failure when one
    was received. Callers sharing a single in-flight fetch all receive the
    same instance.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status,
            }
        }
