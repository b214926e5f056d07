"""Application-level exception types for Bubble."""

from __future__ import annotations

QUOTA_ERROR_TEXT = "The AI service is receiving too many requests right now. Please wait a moment and try again."
API_KEY_ERROR_TEXT = "The API key was rejected by the AI service. Check your key and try again."
UNKNOWN_ERROR_TEXT = "An unknown error occurred."


class BubbleError(Exception):
    """Base exception for Bubble."""


class ConfigurationError(BubbleError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class UpstreamError(BubbleError):
    """Raised when the generation service reports a failure."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MaxRetriesExceeded(BubbleError):
    """Raised when every retry attempt hit a rate limit."""


class CollaboratorUnavailableError(BubbleError):
    """Raised by a collaborator that is not configured."""


def is_quota_error(error: BaseException) -> bool:
    """Return whether an upstream failure is rate-limit or quota related."""
    for attr in ("status", "status_code", "code"):
        if getattr(error, attr, None) == 429:
            return True
    message = str(error).casefold()
    return "429" in message or "quota" in message


def user_friendly_error(error: BaseException) -> str:
    """Translate an exception into text suitable for a chat bubble."""
    if isinstance(error, MaxRetriesExceeded) or is_quota_error(error):
        return QUOTA_ERROR_TEXT
    if isinstance(error, UpstreamError) and error.status in (401, 403):
        return API_KEY_ERROR_TEXT
    message = str(error).strip()
    return message or UNKNOWN_ERROR_TEXT
