"""lumina.errors

Exception hierarchy for the AI layer.

Every error raised past a public boundary is an `AIError`. Subclasses carry
structured fields (`provider`, `status`, `code`) so callers can match on the
failure kind without inspecting message text.
"""

from __future__ import annotations

from typing import Optional

PROVIDER_NAMES = {
    "gemini": "Gemini",
    "groq": "Groq",
    "openrouter": "OpenRouter",
}


def provider_display_name(provider: Optional[str]) -> str:
    if not provider:
        return "the AI provider"
    return PROVIDER_NAMES.get(provider, provider.title())


class AIError(Exception):
    """Base class for all lumina AI errors."""

    def __init__(self, message: Optional[str] = None, *, provider: Optional[str] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.provider = provider

    @property
    def user_message(self) -> str:
        """Text suitable for showing directly to the user."""
        return str(self)


class MissingCredential(AIError):
    """No API key is configured for the selected provider."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"{provider_display_name(provider)} API key is missing. Please add it in Settings!",
            provider=provider,
        )


class TransportError(AIError):
    """Non-2xx HTTP response or SDK-level failure."""

    def __init__(
        self,
        provider: str,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message or f"Failed to connect to {provider_display_name(provider)}.",
            provider=provider,
        )
        self.status = status
        self.code = code


class StreamProtocolError(AIError):
    """An in-band `error` payload inside a server-sent-event stream."""

    def __init__(self, provider: str, message: Optional[str] = None, *, code: Optional[str] = None) -> None:
        super().__init__(
            message or f"{provider_display_name(provider)} reported an error mid-stream.",
            provider=provider,
        )
        self.code = code


class ToolExecutionError(AIError):
    """A tool failed. Never escapes the tool executor."""


class RequestCancelled(AIError):
    """The caller cancelled an in-flight request."""
