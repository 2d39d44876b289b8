"""Custom exceptions for the kartpace engine."""

from __future__ import annotations


class KartPaceError(Exception):
    """Base exception for all kartpace errors."""


class SnapshotValidationError(KartPaceError):
    """Raised when a telemetry frame cannot be parsed into a snapshot batch."""


class ImportFormatError(KartPaceError):
    """Raised when an imported analysis document is not a usable lap bundle."""


class StorageError(KartPaceError):
    """Raised by blob stores when the underlying medium fails."""


class FeedError(KartPaceError):
    """Base exception for telemetry feed transport errors."""


class FeedConnectionError(FeedError):
    """Raised when the feed endpoint cannot be reached."""


class FeedTimeoutError(FeedError):
    """Raised when a request to the feed endpoint times out."""


class FeedAPIError(FeedError):
    """Raised when the feed endpoint returns an error response (4xx/5xx)."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")
