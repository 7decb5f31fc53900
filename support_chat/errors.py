"""Exception types shared by the cache, catalog, and completion layers."""

from __future__ import annotations


class SupportChatError(RuntimeError):
    """Base class for errors raised by the support chat backend."""


class ContentFetchError(SupportChatError):
    """Raised when a website page cannot be fetched or parsed."""

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        message = f"Could not fetch {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CatalogError(SupportChatError):
    """Raised when the product catalog or feedback table cannot be reached."""


class CompletionError(SupportChatError):
    """Raised when the chat completion call fails or returns nothing usable."""
