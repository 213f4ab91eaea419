"""Storage key derivation for archived releases.

This module handles:
- Validating package slugs and version strings
- Reversible, collision-free encoding of versions for use in filenames
- The on-disk layout other tooling (e.g. index generators) depends on

Layout (relative to the store root, LAYOUT_VERSION 1):

    <type>/<slug>/<slug>-<encoded-version>.zip
    <type>/<slug>/<slug>-<encoded-version>.zip.json
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import quote, unquote

from release_vault.errors import ResolutionError
from release_vault.types import PackageIdentity, PackageType

# Bump only together with a migration of existing stores
LAYOUT_VERSION = "1"

ARTIFACT_SUFFIX = ".zip"
METADATA_SUFFIX = ".json"
LOCK_SUFFIX = ".lock"

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
MAX_SLUG_LENGTH = 200
MAX_VERSION_LENGTH = 128

# NAME_MAX of common filesystems, minus the longest name derived from a
# basename: the ".<basename>.XXXXXXXX.part" temp file written beside it
MAX_FILENAME_BYTES = 255
MAX_BASENAME_LENGTH = MAX_FILENAME_BYTES - 16

# Characters kept as-is in encoded versions; everything else, '%' included,
# is percent-encoded so the mapping stays injective.
_VERSION_SAFE_CHARS = "+"


@dataclass(frozen=True)
class StorageKey:
    """Canonical key of one archived release."""

    type: PackageType
    slug: str
    version: str

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(slug=self.slug, type=self.type)

    @property
    def basename(self) -> str:
        """Filename stem shared by the artifact, sidecar and lock file."""
        return f"{self.slug}-{encode_version(self.version)}"

    @property
    def directory(self) -> PurePosixPath:
        return PurePosixPath(self.type.value, self.slug)

    @property
    def artifact_path(self) -> PurePosixPath:
        return self.directory / f"{self.basename}{ARTIFACT_SUFFIX}"

    @property
    def metadata_path(self) -> PurePosixPath:
        return self.directory / f"{self.basename}{ARTIFACT_SUFFIX}{METADATA_SUFFIX}"

    @property
    def lock_path(self) -> PurePosixPath:
        return PurePosixPath(".locks") / self.directory / f"{self.basename}{LOCK_SUFFIX}"

    def __str__(self) -> str:
        return f"{self.type.value}/{self.slug}@{self.version}"


def normalize_slug(slug: str) -> str:
    """Validate and normalize a package slug.

    Args:
        slug: Raw slug (case-insensitive).

    Returns:
        Lower-cased slug.

    Raises:
        ResolutionError: If the slug cannot name a package directory.
    """
    normalized = slug.strip().lower()
    if (
        not normalized
        or len(normalized) > MAX_SLUG_LENGTH
        or not SLUG_PATTERN.match(normalized)
    ):
        raise ResolutionError(f"Invalid package slug: {slug!r}", code="invalid_slug")
    return normalized


def validate_version(version: str) -> str:
    """Validate a version string for use in a storage key.

    Versions are opaque: they are not parsed or ordered, only checked for
    characters that can never appear in a usable version.

    Raises:
        ResolutionError: If the version is empty, too long or has control
            characters.
    """
    if not version or not version.strip():
        raise ResolutionError("Version must not be empty", code="invalid_version")
    if len(version) > MAX_VERSION_LENGTH:
        raise ResolutionError(
            f"Version longer than {MAX_VERSION_LENGTH} characters",
            code="invalid_version",
        )
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in version):
        raise ResolutionError(
            f"Version contains control characters: {version!r}",
            code="invalid_version",
        )
    return version


def encode_version(version: str) -> str:
    """Encode a version string for use inside a filename.

    Alphanumerics and ``._~-+`` are kept; every other character (including
    ``/`` and ``%``) is percent-encoded as UTF-8.
    """
    return quote(version, safe=_VERSION_SAFE_CHARS)


def decode_version(encoded: str) -> str:
    """Reverse encode_version."""
    return unquote(encoded)


def derive_key(
    identity: PackageIdentity,
    version: str,
) -> StorageKey:
    """Compute the canonical storage key for a package version.

    Args:
        identity: Package identity.
        version: Version string.

    Returns:
        StorageKey for the release.

    Raises:
        ResolutionError: If the slug or version is unusable, including a
            pair whose encoded filename would exceed MAX_BASENAME_LENGTH.
    """
    key = StorageKey(
        type=PackageType(identity.type),
        slug=normalize_slug(identity.slug),
        version=validate_version(version),
    )
    if len(key.basename) > MAX_BASENAME_LENGTH:
        raise ResolutionError(
            f"Version {version!r} of {key.slug} is too long to store once encoded",
            code="invalid_version",
        )
    return key


def parse_artifact_filename(slug: str, filename: str) -> str | None:
    """Recover the version from an artifact filename in a slug directory.

    Args:
        slug: Package slug owning the directory.
        filename: Artifact filename (e.g. ``demo-1.2.0.zip``).

    Returns:
        Decoded version, or None if the filename is not an artifact of slug.
    """
    prefix = f"{slug}-"
    if not filename.startswith(prefix) or not filename.endswith(ARTIFACT_SUFFIX):
        return None
    encoded = filename[len(prefix) : -len(ARTIFACT_SUFFIX)]
    if not encoded:
        return None
    return decode_version(encoded)


__all__ = [
    "ARTIFACT_SUFFIX",
    "LAYOUT_VERSION",
    "MAX_BASENAME_LENGTH",
    "MAX_FILENAME_BYTES",
    "METADATA_SUFFIX",
    "StorageKey",
    "decode_version",
    "derive_key",
    "encode_version",
    "normalize_slug",
    "parse_artifact_filename",
    "validate_version",
]
