"""Domain exceptions for code generation.

Every failure the model client, generator or conversation can raise derives
from :class:`CodegenError` and carries a stable ``error_code`` used for
logging, SSE error payloads and HTTP mapping. ``retryable`` tells callers
whether trying again later can reasonably succeed.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class CodegenError(Exception):
    """Base class for code generation domain errors."""

    message: str
    error_code: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class InvalidInput(CodegenError):
    def __init__(self, message: str = "Prompt must not be blank") -> None:
        super().__init__(message=message, error_code="invalid_input")


class AuthError(CodegenError):
    def __init__(self, message: str = "Model API key is missing or invalid") -> None:
        super().__init__(message=message, error_code="auth_failed")


class RateLimited(CodegenError):
    """HTTP 429 from the provider; ``retry_after`` is in seconds when known."""

    retry_after: float | None

    def __init__(
        self,
        message: str = "Model provider rate limit exceeded",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message=message, error_code="rate_limited", retryable=True)
        self.retry_after = retry_after


class TransientNetworkError(CodegenError):
    def __init__(
        self,
        message: str = "Network error while contacting the model provider",
        error_code: str = "network_error",
    ) -> None:
        super().__init__(message=message, error_code=error_code, retryable=True)


class StreamStalled(TransientNetworkError):
    def __init__(self, idle_seconds: float) -> None:
        super().__init__(
            message=f"No data received from the model for {idle_seconds:g}s",
            error_code="stream_stalled",
        )


class MalformedFrame(CodegenError):
    """A single streaming frame could not be decoded; the stream continues."""

    def __init__(self, message: str = "Malformed streaming frame") -> None:
        super().__init__(message=message, error_code="malformed_frame")


class ModelError(CodegenError):
    def __init__(self, message: str = "The model provider returned an error") -> None:
        super().__init__(message=message, error_code="model_error")


class GenerationCancelled(CodegenError):
    """Cancellation requested by the user or by a newer submission."""

    def __init__(self, message: str = "Code generation cancelled") -> None:
        super().__init__(message=message, error_code="cancelled")


_FRIENDLY_MESSAGES: dict[str, str] = {
    "invalid_input": "Please enter a prompt.",
    "auth_failed": "The AI service rejected our credentials. Please contact support.",
    "rate_limited": (
        "The AI service is receiving too many requests. Please wait a moment "
        "and try again."
    ),
    "network_error": (
        "There was a network issue connecting to the AI service. "
        "Please try again."
    ),
    "stream_stalled": (
        "The AI service stopped responding mid-answer. Please try again."
    ),
}


def describe_failure(exc: BaseException) -> str:
    """Turn an exception into the message shown on a failed turn."""
    if isinstance(exc, CodegenError):
        detail = _FRIENDLY_MESSAGES.get(exc.error_code, exc.message)
    else:
        detail = str(exc) or "Unknown error"
    return f"Failed to generate code: {detail}"
