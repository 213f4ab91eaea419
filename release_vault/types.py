"""Shared type definitions for release_vault.

This module contains enums and small value types shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class PackageType(str, Enum):
    """Kind of package managed by the vault."""

    PLUGIN = "plugin"
    THEME = "theme"


class ItemStatus(str, Enum):
    """Outcome of one item in an archiving batch."""

    ARCHIVED = "archived"
    CACHED = "cached"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PackageIdentity:
    """Identity of a package: its slug and type."""

    slug: str
    type: PackageType

    def __str__(self) -> str:
        return f"{self.type.value}/{self.slug}"


__all__ = [
    "ItemStatus",
    "PackageIdentity",
    "PackageType",
]
