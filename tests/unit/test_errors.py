"""Unit tests for provider failure classification."""

from __future__ import annotations

import pytest

from fine_format.adapters.llm.errors import classify_failure, is_retriable, make_failure, rotates_key
from fine_format.adapters.llm.types import FailureKind


class TestClassifyFailure:
    """Tests for classify_failure."""

    @pytest.mark.parametrize(
        ("status_code", "message", "expected"),
        [
            (429, "", FailureKind.RATE_LIMITED),
            (None, "Quota exceeded for quota metric", FailureKind.RATE_LIMITED),
            (None, "RESOURCE_EXHAUSTED", FailureKind.RATE_LIMITED),
            (408, "", FailureKind.TIMEOUT),
            (504, "", FailureKind.TIMEOUT),
            (None, "Request timed out", FailureKind.TIMEOUT),
            (401, "", FailureKind.AUTH),
            (403, "", FailureKind.AUTH),
            (400, "API key not valid. Please pass a valid API key.", FailureKind.AUTH),
            (None, "Content was blocked by SAFETY filters", FailureKind.SAFETY_BLOCKED),
            (400, "Malformed request", FailureKind.BAD_REQUEST),
            (503, "", FailureKind.SERVICE_UNAVAILABLE),
            (None, "The model is overloaded", FailureKind.SERVICE_UNAVAILABLE),
            (400, "Invalid value for field 'timeout'", FailureKind.BAD_REQUEST),
            (403, "Request aborted by upstream proxy", FailureKind.AUTH),
            (429, "Deadline exceeded while waiting for quota", FailureKind.RATE_LIMITED),
            (500, "Internal error", FailureKind.UNKNOWN),
            (None, "No response from Gemini API", FailureKind.UNKNOWN),
        ],
    )
    def test_classification(self, status_code: int | None, message: str, expected: FailureKind) -> None:
        """Status codes and error text map to a failure kind."""
        assert classify_failure(status_code, message) is expected


class TestRetriable:
    """Tests for retry and rotation decisions."""

    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            (FailureKind.TIMEOUT, True),
            (FailureKind.RATE_LIMITED, True),
            (FailureKind.SERVICE_UNAVAILABLE, True),
            (FailureKind.UNKNOWN, True),
            (FailureKind.AUTH, False),
            (FailureKind.BAD_REQUEST, False),
            (FailureKind.SAFETY_BLOCKED, False),
        ],
    )
    def test_is_retriable(self, kind: FailureKind, expected: bool) -> None:
        """Only transient kinds are retriable."""
        assert is_retriable(kind) is expected

    def test_auth_failure_rotates_key(self) -> None:
        """An invalid key is not retriable but still moves to the next key."""
        failure = make_failure(401, "Unauthorized")

        assert failure.retriable is False
        assert rotates_key(failure) is True

    def test_bad_request_does_not_rotate(self) -> None:
        """A malformed request fails the same way on every key."""
        failure = make_failure(400, "Malformed request")

        assert rotates_key(failure) is False

    def test_make_failure_keeps_status(self) -> None:
        """The status code is kept for diagnostics."""
        failure = make_failure(429, "Too Many Requests")

        assert failure.ok is False
        assert failure.kind is FailureKind.RATE_LIMITED
        assert failure.status_code == 429
