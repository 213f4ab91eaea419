"""Release and archived artifact value types.

A Release names one version of one package and where its bytes come from.
An ArchivedArtifact describes the bytes once they are in the archive store.
Neither is mutated after construction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from release_vault.types import PackageIdentity, PackageType


@dataclass(frozen=True)
class Release:
    """An immutable reference to a package version and its source.

    Attributes:
        package: Identity of the package this release belongs to.
        version: Opaque version string, compared only for equality.
        source: Local file/directory path or remote URL for the bytes.
        expected_size: Size in bytes declared by the source, if any.
        expected_sha256: SHA-256 declared by the source, if any.
    """

    package: PackageIdentity
    version: str
    source: str
    expected_size: int | None = None
    expected_sha256: str | None = None

    def __post_init__(self) -> None:
        """Validate fields after initialization."""
        if not self.version or not self.version.strip():
            raise ValueError("version must be a non-empty string")
        if not self.source or not self.source.strip():
            raise ValueError("source must be a non-empty string")
        if self.expected_size is not None and self.expected_size < 0:
            raise ValueError("expected_size must not be negative")

    def __str__(self) -> str:
        return f"{self.package}@{self.version}"


@dataclass(frozen=True)
class ArchivedArtifact:
    """Metadata for a release artifact held in the archive store."""

    type: PackageType
    slug: str
    version: str
    path: str
    size_bytes: int
    sha256: str
    sha1: str
    archived_at: datetime
    source: str = ""

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(slug=self.slug, type=self.type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        data["type"] = self.type.value
        data["archived_at"] = self.archived_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArchivedArtifact:
        """Build an ArchivedArtifact from its dictionary form."""
        return cls(
            type=PackageType(data["type"]),
            slug=data["slug"],
            version=data["version"],
            path=data["path"],
            size_bytes=int(data["size_bytes"]),
            sha256=data["sha256"],
            sha1=data["sha1"],
            archived_at=datetime.fromisoformat(data["archived_at"]),
            source=data.get("source", ""),
        )


@dataclass
class ArchiveResult:
    """Result of archiving one release.

    Attributes:
        release: The release that was requested.
        success: Whether the artifact is now in the store.
        artifact: Stored artifact metadata on success.
        cached: True when the artifact already existed and nothing was fetched.
        error: The typed failure when success is False.
    """

    release: Release
    success: bool
    artifact: ArchivedArtifact | None = None
    cached: bool = False
    error: Exception | None = None

    @property
    def code(self) -> str | None:
        """Stable error code of the failure, if any."""
        if self.error is None:
            return None
        return getattr(self.error, "code", "internal_error")

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        if self.cached:
            return f"{self.release} already archived"
        return f"{self.release} archived"


__all__ = ["ArchiveResult", "ArchivedArtifact", "Release"]
