from __future__ import annotations

from typing import Optional


class LostLibraryError(Exception):
    """Base class for all application errors."""


class StorageUnavailable(LostLibraryError):
    """Device storage cannot be read or written."""


class ValidationError(LostLibraryError):
    """User input rejected before any network call."""


class BackendError(LostLibraryError):
    """The backend answered with an error."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class BackendUnavailable(BackendError):
    """Network failure, timeout or server-side error. Safe to try again."""


class AuthenticationError(BackendError):
    """Credentials or tokens were rejected."""


class SchemaMismatch(LostLibraryError):
    """A persisted record has an unknown version or shape."""
