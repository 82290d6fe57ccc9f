"""
Exception classes for the repository cache.
"""

from pathlib import Path
from typing import Optional


class GhCacheError(Exception):
    """Base exception for all cache-related errors."""

    pass


class InvalidReferenceError(GhCacheError):
    """Raised when a repository reference cannot be parsed or names are illegal."""

    def __init__(self, reference: str, message: str = ""):
        self.reference = reference
        if message:
            super().__init__(message)
        else:
            super().__init__(f"Invalid GitHub reference: {reference}")


class FetchFailedError(GhCacheError):
    """Raised when cloning a repository fails or leaves an unusable clone."""

    def __init__(self, key: str, url: str, cause: Optional[BaseException] = None):
        self.key = key
        self.url = url
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to clone {key} from {url}{detail}")


class StoreUnavailableError(GhCacheError):
    """Raised when the metadata file cannot be written."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not write cache metadata to {path}{detail}")


class DeletionFailedError(GhCacheError):
    """Raised when a cached clone cannot be removed from disk.

    The metadata record is left in place so the entry never points at nothing.
    """

    def __init__(self, key: str, path: Path, cause: Optional[BaseException] = None):
        self.key = key
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to delete {key} at {path}{detail}")
