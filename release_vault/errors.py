"""Error taxonomy for archiving operations.

Every error carries a stable ``code`` for structured handling by the CLI
and HTTP API:

- ResolutionError: package or whitelist lookup found no usable match.
- FetchError: obtaining release bytes failed (network, local read, timeout).
- IntegrityError: fetched bytes are empty or fail a declared size/checksum.
- StorageError: the archive medium could not be read or written.
"""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for archiving failures."""

    default_code = "archive_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initialize ArchiveError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code or self.default_code


class ResolutionError(ArchiveError):
    """Raised when a package cannot be resolved to a concrete identity."""

    default_code = "resolution_error"


class FetchError(ArchiveError):
    """Raised when release bytes cannot be obtained from their source."""

    default_code = "fetch_error"


class IntegrityError(FetchError):
    """Raised when fetched bytes are empty or fail a declared check."""

    default_code = "integrity_error"


class StorageError(ArchiveError):
    """Raised when the archive store cannot be read or written."""

    default_code = "storage_error"


class ArtifactNotFoundError(StorageError):
    """Raised when an archived artifact is requested but not stored."""

    default_code = "artifact_not_found"


__all__ = [
    "ArchiveError",
    "ArtifactNotFoundError",
    "FetchError",
    "IntegrityError",
    "ResolutionError",
    "StorageError",
]
