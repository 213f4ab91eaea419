"""Lifecycle events that may require archiving.

Events carry explicit snapshots (whitelist before/after, parsed update
offers) so the coordinator never reads ambient global state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from release_vault.types import PackageIdentity, PackageType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhitelistAdded:
    """Packages were whitelisted for the first time."""

    type: PackageType
    slugs: tuple[str, ...]


@dataclass(frozen=True)
class WhitelistChanged:
    """The whitelist of one package type changed."""

    type: PackageType
    before: tuple[str, ...]
    after: tuple[str, ...]

    @property
    def added(self) -> tuple[str, ...]:
        """Slugs present after but not before, in ``after`` order."""
        previous = set(self.before)
        return tuple(slug for slug in self.after if slug not in previous)

    @property
    def removed(self) -> tuple[str, ...]:
        current = set(self.after)
        return tuple(slug for slug in self.before if slug not in current)


class UpdateOffer(BaseModel):
    """One available update reported by an update check.

    Attributes:
        slug: Package slug.
        type: Package type.
        new_version: Version offered by the update.
        package_url: Download location of the new version.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    slug: str = Field(min_length=1)
    type: PackageType
    new_version: str = Field(min_length=1)
    package_url: str = Field(min_length=1)

    @field_validator("slug")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        """Lower-case and strip the slug."""
        return v.strip().lower()

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(slug=self.slug, type=self.type)


@dataclass(frozen=True)
class UpdatesAvailable:
    """An update check reported new versions."""

    type: PackageType
    offers: tuple[UpdateOffer, ...]


@dataclass(frozen=True)
class UpgradeCompleted:
    """A package was upgraded through the management UI."""

    type: PackageType
    slug: str


ArchiveEvent = WhitelistAdded | WhitelistChanged | UpdatesAvailable | UpgradeCompleted


def _entry_to_dict(entry: Any) -> dict[str, Any] | None:
    """Coerce an update entry (mapping or attribute object) to a dict."""
    if isinstance(entry, Mapping):
        return dict(entry)
    if hasattr(entry, "__dict__"):
        return dict(vars(entry))
    return None


def _slug_from_key(key: str) -> str:
    """Derive a slug from an update key.

    Plugin updates are keyed by plugin file (``akismet/akismet.php``); the
    directory name is the slug. Theme updates are keyed by slug.
    """
    return key.split("/", 1)[0]


def parse_update_payload(
    payload: Any,
    package_type: PackageType,
) -> list[UpdateOffer]:
    """Parse a loosely shaped update-check payload into UpdateOffers.

    Accepts ``{"response": {key: entry}}``, a bare ``{key: entry}`` mapping,
    or an object with a ``response`` attribute. Entries without a download
    URL or version are dropped.

    Args:
        payload: Raw update-check result.
        package_type: Type of the packages in the payload.

    Returns:
        List of validated UpdateOffer instances.
    """
    if payload is None:
        return []

    if isinstance(payload, Mapping):
        response = payload.get("response", payload)
    else:
        response = getattr(payload, "response", None)

    if not isinstance(response, Mapping):
        return []

    offers: list[UpdateOffer] = []
    for key, raw_entry in response.items():
        entry = _entry_to_dict(raw_entry)
        if entry is None:
            logger.debug("Ignoring malformed update entry for %s", key)
            continue

        package_url = entry.get("package")
        new_version = entry.get("new_version")
        if not package_url or not new_version:
            continue

        slug = entry.get("slug") or _slug_from_key(str(key))
        try:
            offers.append(
                UpdateOffer(
                    slug=str(slug),
                    type=package_type,
                    new_version=str(new_version),
                    package_url=str(package_url),
                )
            )
        except ValidationError as e:
            logger.warning("Ignoring invalid update entry for %s: %s", key, e)

    return offers


__all__ = [
    "ArchiveEvent",
    "UpdateOffer",
    "UpdatesAvailable",
    "UpgradeCompleted",
    "WhitelistAdded",
    "WhitelistChanged",
    "parse_update_payload",
]
