"""Unit tests for the error hierarchy and classification."""

from __future__ import annotations

import pytest

from comicizer.errors import (
    AuthError,
    ComicizerError,
    ExtractionEmptyError,
    JobError,
    JobFailedError,
    JobNotFoundError,
    JobTimeoutError,
    PlanParseError,
    TransportError,
    classify_error,
    is_auth_message,
)


class TestHierarchy:
    """Tests for error attributes and retryability."""

    def test_retryable_flags(self) -> None:
        assert TransportError("reset").retryable
        assert not AuthError("no key").retryable
        assert not ExtractionEmptyError("empty", step="analysis").retryable
        assert not PlanParseError("bad").retryable
        assert not JobFailedError("nsfw").retryable

    def test_job_errors_share_base(self) -> None:
        for error in (
            JobFailedError("x", job_id="j"),
            JobTimeoutError(attempts=60, elapsed=180.0, job_id="j"),
            JobNotFoundError("j"),
        ):
            assert isinstance(error, JobError)
            assert isinstance(error, ComicizerError)
            assert error.job_id == "j"

    def test_timeout_message(self) -> None:
        error = JobTimeoutError(attempts=60, elapsed=179.6)
        assert str(error) == (
            "Image generation timeout after 60 attempts (180s). "
            "The image may still be generating on the server."
        )

    @pytest.mark.parametrize(
        "provider, fragment",
        [
            ("openrouter", "openrouter.ai/keys"),
            ("crsai", "keys set --crsai"),
            (None, "Please configure your API key"),
        ],
    )
    def test_auth_default_hints(self, provider, fragment: str) -> None:
        assert fragment in AuthError("denied", provider=provider).resolution_hint

    def test_auth_explicit_hint(self) -> None:
        error = AuthError("denied", resolution_hint="Rotate the key")
        assert error.resolution_hint == "Rotate the key"


class TestClassifyError:
    """Tests for mapping foreign exceptions onto AuthError."""

    @pytest.mark.parametrize(
        "message",
        [
            "UNAUTHENTICATED",
            "HTTP 401",
            "Unauthorized request",
            "Requested entity was not found.",
            "Request had invalid authentication credentials.",
            "API Key not found. Please configure your API key",
        ],
    )
    def test_auth_patterns(self, message: str) -> None:
        assert is_auth_message(message)
        classified = classify_error(RuntimeError(message), provider="crsai")
        assert isinstance(classified, AuthError)
        assert classified.provider == "crsai"
        assert str(classified) == message

    def test_keeps_error_provider(self) -> None:
        error = TransportError("401 from upstream", provider="openrouter")
        classified = classify_error(error, provider="crsai")
        assert isinstance(classified, AuthError)
        assert classified.provider == "openrouter"

    def test_other_errors_unchanged(self) -> None:
        error = TransportError("connection reset")
        assert classify_error(error) is error
        assert not is_auth_message("rate limited")

    @pytest.mark.parametrize("message", ["job-4017", "4012 tokens", "HTTP 4010"])
    def test_status_code_needs_word_boundary(self, message: str) -> None:
        assert not is_auth_message(message)

    def test_job_errors_keep_their_type(self) -> None:
        """Test that job errors mentioning 401 in ids or reasons stay job errors."""
        not_found = JobNotFoundError("job-401", provider="crsai")
        failed = JobFailedError("HTTP 401 from the image CDN", job_id="job-1")
        assert classify_error(not_found) is not_found
        assert classify_error(failed) is failed

    def test_auth_error_unchanged(self) -> None:
        error = AuthError("denied")
        assert classify_error(error) is error
