"""Exception hierarchy shared by the storage gateway, image pipeline and services."""

from __future__ import annotations


class MediavaultError(Exception):
    """Base exception for all Mediavault errors."""

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidFilename(MediavaultError, ValueError):
    """Filename does not match the storage key grammar. Never retried."""

    def __init__(self, filename: str) -> None:
        super().__init__(f'Invalid filename "{filename}"', {"filename": filename})
        self.filename = filename


class AlreadyExists(MediavaultError):
    """A first-time upload collided with an existing object."""

    def __init__(self, filename: str) -> None:
        super().__init__(f"File {filename} already exists", {"filename": filename})
        self.filename = filename


class PayloadTooLarge(MediavaultError):
    """Content exceeded the byte budget."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"File size is too large (max {limit} bytes)",
            {"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class StorageUnavailable(MediavaultError):
    """Network or bucket fault reported by the storage backend."""


class DownloadFailed(StorageUnavailable):
    """A remote URL could not be fetched."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch file: {reason}", {"url": url})
        self.url = url


class InvalidMediaURL(MediavaultError):
    """The media URL is not owned by the configured storage gateway."""

    def __init__(self, url: str) -> None:
        super().__init__("Invalid media URL", {"url": url})
        self.url = url


class InvalidImage(MediavaultError):
    """The buffer could not be decoded as an image."""


class TransactionRollbackFailure(MediavaultError):
    """Compensation of a failed replace did not complete.

    ``original_error`` is the failure that triggered the rollback; the
    compensation error itself is chained as ``__cause__``.
    """

    def __init__(self, original_error: BaseException, staged: dict[str, str]) -> None:
        super().__init__(
            f"Rollback failed after {type(original_error).__name__}: {original_error}",
            {"staged": dict(staged)},
        )
        self.original_error = original_error
        self.staged = dict(staged)


__all__ = [
    "MediavaultError",
    "InvalidFilename",
    "AlreadyExists",
    "PayloadTooLarge",
    "StorageUnavailable",
    "DownloadFailed",
    "InvalidMediaURL",
    "InvalidImage",
    "TransactionRollbackFailure",
]
