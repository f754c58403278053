"""Unit tests for subjectpage.errors."""

from __future__ import annotations

from subjectpage.errors import ErrorCode, SubjectFetchError


def test_carries_status_and_message() -> None:
    error = SubjectFetchError(code=ErrorCode.FETCH_FAILED, message="HTTP 500", status=500)
    assert str(error) == "HTTP 500"
    assert error.status == 500


def test_status_optional() -> None:
    assert SubjectFetchError(code=ErrorCode.TIMEOUT, message="slow").status is None


def test_to_dict() -> None:
    error = SubjectFetchError(code=ErrorCode.CHALLENGE_UNRESOLVED, message="nope", status=403)
    assert error.to_dict() == {
        "error": {"code": "CHALLENGE_UNRESOLVED", "message": "nope", "status": 403}
    }
