"""
Application errors.

Each component raises one of these at its boundary so callers only ever see a
plain descriptive message, never the low-level fault underneath.
"""

from __future__ import annotations


class MobiusError(Exception):
    """Base class carrying a user-facing message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AccessCancelled(MobiusError):
    """The user dismissed the folder picker."""


class AccessDenied(MobiusError):
    """The folder could not be granted or read."""


class DocumentStoreError(MobiusError):
    """A read/write/create/copy against the document store failed."""


class ServiceUnavailableError(MobiusError):
    """A domain service is not connected or failed."""


class WebSearchError(MobiusError):
    """The web search backing "ask: websearch" failed."""


class ProviderError(MobiusError):
    """A single language-model provider failed."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderChainExhausted(MobiusError):
    """Every provider from the start of the chain failed."""

    def __init__(self, attempted: list[str], last_error: Exception | None) -> None:
        self.attempted = attempted
        self.last_error = last_error
        detail = str(last_error) if last_error else "no providers configured"
        super().__init__(f"All models failed. Last error: {detail}")
