"""Error taxonomy raised by the user directory and its stores."""
from __future__ import annotations


class DirectoryError(Exception):
    """Base class for errors surfaced to directory callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DirectoryError):
    """A required input was missing or malformed."""

    status_code = 400


class ConflictError(DirectoryError):
    """A unique key is already taken by a live record."""

    status_code = 409


class NotFound(DirectoryError):
    """No record matches the requested identifier."""

    status_code = 404


class SelfDeletionError(DirectoryError):
    """A principal attempted to delete their own record."""

    status_code = 400


class StoreUnavailable(DirectoryError):
    """The backing medium could not be read or written."""

    status_code = 500


__all__ = [
    "DirectoryError",
    "ValidationError",
    "ConflictError",
    "NotFound",
    "SelfDeletionError",
    "StoreUnavailable",
]
