"""
Avatar Cache Errors

Every failure raised by the fetcher, the stores and the save boundary
derives from AvatarCacheError, so per-key loops can catch one type.
"""

from typing import Optional


class AvatarCacheError(Exception):
    """Base error for avatar cache operations."""


class RedirectError(AvatarCacheError):
    """Redirect response without a Location header."""


class HttpError(AvatarCacheError):
    """Final response status was not a success."""

    def __init__(self, url: str, status_code: int, message: Optional[str] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message or f"Failed to fetch {url}, status code: {status_code}")


class FetchTimeoutError(AvatarCacheError):
    """No complete response within the timeout."""


class NetworkError(AvatarCacheError):
    """Transport-level failure (DNS, connection reset, ...)."""


class StorageError(AvatarCacheError):
    """Writing or renaming a file on disk failed."""


class MetadataError(AvatarCacheError):
    """Persisted metadata could not be parsed."""


class RosterError(AvatarCacheError):
    """Roster file missing or unreadable."""
