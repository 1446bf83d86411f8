"""Structured error classes for the comic pipeline.

Each error type indicates whether it can be retried, so the poller and the
orchestrator can decide between absorbing a failure and halting the run.

Error Hierarchy:
    ComicizerError (base)
    ├── AuthError (not retryable, requires key configuration)
    ├── ExtractionEmptyError (not retryable, response had no usable payload)
    ├── PlanParseError (not retryable, every recovery strategy failed)
    ├── JobError (async image job terminal states)
    │   ├── JobFailedError
    │   ├── JobTimeoutError
    │   └── JobNotFoundError
    ├── TransportError (retryable, network/HTTP failure)
    ├── UploadError (not retryable, input document rejected)
    └── ConfigError (not retryable)

Usage:
    try:
        pages = await orchestrator.run(data, "application/pdf")
    except AuthError as e:
        print(f"Configure a key for {e.provider}: {e.resolution_hint}")
    except PlanParseError as e:
        print(f"Unparseable plan: {e.preview}")
    except ComicizerError as e:
        print(f"Failed: {e}")
"""

from __future__ import annotations

import re

from comicizer.constants import DEFAULT_PREVIEW_CHARS


class ComicizerError(Exception):
    """Base exception for all comicizer errors.

    Attributes:
        provider: The provider name involved, if any (e.g., "openrouter", "crsai")
        retryable: Whether this error type may be retried
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class AuthError(ComicizerError):
    """Credential missing or rejected by the provider.

    Surfaced distinctly so the caller can re-open key configuration instead
    of showing a generic failure.
    """

    _DEFAULT_HINTS: dict[str, str] = {
        "openrouter": (
            "Get a key from https://openrouter.ai/keys and run 'comicizer keys set'"
        ),
        "crsai": "Configure your CRSAI key with 'comicizer keys set --crsai'",
    }

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        resolution_hint: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider, retryable=False)
        self.resolution_hint = (
            resolution_hint
            if resolution_hint is not None
            else self._DEFAULT_HINTS.get(
                provider or "", "Please configure your API key in the settings"
            )
        )


class ExtractionEmptyError(ComicizerError):
    """A call succeeded but no usable text or image could be located."""

    def __init__(
        self, message: str, *, step: str, provider: str | None = None
    ) -> None:
        super().__init__(message, provider=provider, retryable=False)
        self.step = step


class PlanParseError(ComicizerError):
    """Every plan recovery strategy was exhausted.

    Attributes:
        preview: Bounded prefix of the offending raw text
        attempts: ``(strategy_name, reason)`` pairs in the order tried
    """

    def __init__(
        self,
        message: str,
        *,
        raw_text: str = "",
        attempts: list[tuple[str, str]] | None = None,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        super().__init__(message, retryable=False)
        self.preview = raw_text[:preview_chars]
        self.raw_length = len(raw_text)
        self.attempts = list(attempts or [])


class JobError(ComicizerError):
    """Base class for terminal states of an asynchronous image job."""

    def __init__(
        self, message: str, *, job_id: str | None = None, provider: str | None = None
    ) -> None:
        super().__init__(message, provider=provider, retryable=False)
        self.job_id = job_id


class JobFailedError(JobError):
    """The backend explicitly reported the job as failed."""

    def __init__(
        self, reason: str, *, job_id: str | None = None, provider: str | None = None
    ) -> None:
        super().__init__(
            f"Image generation failed: {reason}", job_id=job_id, provider=provider
        )
        self.reason = reason


class JobTimeoutError(JobError):
    """The retry budget was exhausted before the job reached a terminal state."""

    def __init__(
        self,
        *,
        attempts: int,
        elapsed: float,
        job_id: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(
            f"Image generation timeout after {attempts} attempts ({elapsed:.0f}s). "
            "The image may still be generating on the server.",
            job_id=job_id,
            provider=provider,
        )
        self.attempts = attempts
        self.elapsed = elapsed


class JobNotFoundError(JobError):
    """The backend does not know the job handle."""

    def __init__(self, job_id: str, *, provider: str | None = None) -> None:
        super().__init__(
            f"Task not found: {job_id}", job_id=job_id, provider=provider
        )


class TransportError(ComicizerError):
    """Network or HTTP failure not otherwise classified.

    Attributes:
        status_code: HTTP status if a response was received
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, retryable=True)
        self.status_code = status_code


class UploadError(ComicizerError):
    """The uploaded document was rejected before the pipeline started."""


class ConfigError(ComicizerError):
    """Invalid or unreadable configuration."""


# ---------------------------------------------------------------------------
# Shared error classification
# ---------------------------------------------------------------------------

# Known error message patterns for authentication issues. "Requested entity
# was not found" is what some providers report for a bad key.
_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthenticated",
    "unauthorized",
    "requested entity was not found",
    "invalid authentication credentials",
    "api key not found",
    "please configure your api key",
)

# Bare status code; job ids and lengths such as "job-4017" must not match
_AUTH_STATUS_RE = re.compile(r"(?<![\w-])401(?![\w-])")


def is_auth_message(message: str) -> bool:
    """Check an error message against the known authentication patterns."""
    message_lower = message.lower()
    if _AUTH_STATUS_RE.search(message_lower):
        return True
    return any(p in message_lower for p in _AUTH_PATTERNS)


def classify_error(error: Exception, provider: str | None = None) -> Exception:
    """Map an arbitrary exception onto the comicizer hierarchy.

    Messages matching an authentication pattern become ``AuthError`` even
    when raised as another type. Errors already classified by comicizer
    keep their type, except transport failures whose upstream message
    names an authentication problem. Everything else is returned unchanged.
    """
    if isinstance(error, AuthError):
        return error
    if isinstance(error, ComicizerError) and not isinstance(error, TransportError):
        return error
    message = str(error)
    if is_auth_message(message):
        return AuthError(message, provider=getattr(error, "provider", None) or provider)
    return error


__all__ = [
    "AuthError",
    "ComicizerError",
    "ConfigError",
    "ExtractionEmptyError",
    "JobError",
    "JobFailedError",
    "JobNotFoundError",
    "JobTimeoutError",
    "PlanParseError",
    "TransportError",
    "UploadError",
    "classify_error",
    "is_auth_message",
]
