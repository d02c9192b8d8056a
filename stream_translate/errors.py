"""Error definitions for the streaming translation pipeline."""

from __future__ import annotations

from typing import Optional


class StreamTranslateError(Exception):
    """Base exception for all custom errors."""


class ProviderConfigurationError(StreamTranslateError):
    """Raised when the generation provider is misconfigured."""


class MissingApiKeyError(ProviderConfigurationError):
    """Raised when a required provider API key is missing."""


class TranslationProviderError(StreamTranslateError):
    """Raised when a generation call fails."""


class TitleTranslationError(StreamTranslateError):
    """Raised when the title cannot be translated; fatal for the attempt."""


class UnknownRulesetError(StreamTranslateError):
    """Raised when a request was segmented with a different classification rule set."""

    def __init__(self, received: Optional[str], expected: str) -> None:
        super().__init__(
            f"Unsupported segmentation ruleset '{received}'; this server uses '{expected}'."
        )
        self.received = received
        self.expected = expected


class TranslationCancelled(StreamTranslateError):
    """Raised inside a consumer attempt once cancellation has been requested."""


class StreamTransportError(StreamTranslateError):
    """Raised when the producer answered with an error or the stream broke."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedEnvelopeError(StreamTranslateError):
    """Raised when a protocol line is not a recognisable envelope."""
