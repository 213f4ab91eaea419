"""Package and whitelist services.

This module provides the high-level API for the package repository and
the whitelist repository:

- CRUD and lookup of packages, with resolution errors that distinguish
  "no match" from "ambiguous match"
- Recording install/upgrade and update-check results
- Bulk import of package descriptors
- Whitelist membership changes, returned as before/after snapshots
- Session-owning repository classes used by the archive coordinator
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import yaml
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from release_vault.db import get_session
from release_vault.errors import ResolutionError
from release_vault.packages.io import load_packages
from release_vault.packages.models import Package, WhitelistEntry
from release_vault.packages.schema import (
    PackageBulkImportResult,
    PackageImportResult,
    PackageSchema,
)
from release_vault.releases.models import Release
from release_vault.triggers.events import WhitelistChanged
from release_vault.types import PackageIdentity, PackageType

logger = logging.getLogger(__name__)


class PackageNotFoundError(ResolutionError):
    """Raised when no package matches a lookup."""

    def __init__(self, slug: str, package_type: PackageType | None = None) -> None:
        self.slug = slug
        self.package_type = package_type
        label = f"{package_type.value}/{slug}" if package_type else slug
        super().__init__(f"Package not found: {label}", code="package_not_found")


class AmbiguousPackageError(ResolutionError):
    """Raised when a slug matches more than one package."""

    def __init__(self, slug: str, types: Sequence[str]) -> None:
        self.slug = slug
        self.types = list(types)
        super().__init__(
            f"Package slug '{slug}' is ambiguous; matches types: {', '.join(types)}",
            code="package_ambiguous",
        )


@dataclass(frozen=True)
class PackageInfo:
    """Read-only snapshot of a package for one archiving operation."""

    slug: str
    type: PackageType
    name: str
    installed_version: str | None = None
    installed_source: str | None = None
    latest_version: str | None = None
    latest_source: str | None = None

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(slug=self.slug, type=self.type)

    @property
    def is_installed(self) -> bool:
        return bool(self.installed_version and self.installed_source)

    @property
    def installed_release(self) -> Release | None:
        """Release for the installed version, built from its local source."""
        if not self.is_installed:
            return None
        return Release(
            package=self.identity,
            version=self.installed_version,  # type: ignore[arg-type]
            source=self.installed_source,  # type: ignore[arg-type]
        )

    @property
    def latest_release(self) -> Release | None:
        """Release for the latest known version, if any."""
        if not (self.latest_version and self.latest_source):
            return None
        return Release(
            package=self.identity,
            version=self.latest_version,
            source=self.latest_source,
        )


def package_to_info(package: Package) -> PackageInfo:
    """Snapshot a Package ORM instance."""
    return PackageInfo(
        slug=package.slug,
        type=PackageType(package.type),
        name=package.name,
        installed_version=package.installed_version,
        installed_source=package.installed_source,
        latest_version=package.latest_version,
        latest_source=package.latest_source,
    )


def package_to_schema(package: Package) -> PackageSchema:
    """Convert a Package ORM model to a PackageSchema."""
    return PackageSchema(
        slug=package.slug,
        type=PackageType(package.type),
        name=package.name,
        installed_version=package.installed_version,
        installed_source=package.installed_source,
        latest_version=package.latest_version,
        latest_source=package.latest_source,
    )


def schema_to_package(schema: PackageSchema) -> Package:
    """Convert a PackageSchema to a Package ORM model (not yet added)."""
    return Package(
        slug=schema.slug,
        type=schema.type.value,
        name=schema.display_name,
        installed_version=schema.installed_version,
        installed_source=schema.installed_source,
        latest_version=schema.latest_version,
        latest_source=schema.latest_source,
    )


def update_package_from_schema(package: Package, schema: PackageSchema) -> None:
    """Update a Package ORM model from a PackageSchema.

    Identity (slug, type) is immutable.
    """
    package.name = schema.display_name
    package.installed_version = schema.installed_version
    package.installed_source = schema.installed_source
    package.latest_version = schema.latest_version
    package.latest_source = schema.latest_source
    package.updated_at = datetime.now()


# Lookup


def get_package_or_none(
    session: Session, slug: str, package_type: PackageType
) -> Package | None:
    """Get a package by identity, or None if not found."""
    stmt = select(Package).where(
        Package.slug == slug.lower(),
        Package.type == package_type.value,
    )
    return session.execute(stmt).scalar_one_or_none()


def resolve_package(
    session: Session,
    slug: str,
    package_type: PackageType | None = None,
) -> Package:
    """Resolve a filter {slug, type} to exactly one package.

    Args:
        session: SQLAlchemy session.
        slug: Package slug.
        package_type: Package type; when omitted any type may match.

    Returns:
        The matching Package.

    Raises:
        PackageNotFoundError: If nothing matches.
        AmbiguousPackageError: If more than one package matches.
    """
    stmt = select(Package).where(Package.slug == slug.lower())
    if package_type is not None:
        stmt = stmt.where(Package.type == package_type.value)

    matches = list(session.execute(stmt.order_by(Package.type)).scalars().all())
    if not matches:
        raise PackageNotFoundError(slug, package_type)
    if len(matches) > 1:
        raise AmbiguousPackageError(slug, [p.type for p in matches])
    return matches[0]


def list_packages(
    session: Session,
    package_type: PackageType | None = None,
) -> Sequence[Package]:
    """List packages, optionally filtered by type."""
    stmt = select(Package)
    if package_type is not None:
        stmt = stmt.where(Package.type == package_type.value)
    stmt = stmt.order_by(Package.type, Package.slug)
    return session.execute(stmt).scalars().all()


# Mutations


def create_or_update_package(
    session: Session, schema: PackageSchema
) -> tuple[Package, bool]:
    """Create a package or update it if it already exists.

    Returns:
        Tuple of (Package, created).
    """
    existing = get_package_or_none(session, schema.slug, schema.type)
    if existing is None:
        package = schema_to_package(schema)
        session.add(package)
        session.flush()
        return package, True

    update_package_from_schema(existing, schema)
    session.flush()
    return existing, False


def record_install(
    session: Session,
    slug: str,
    package_type: PackageType,
    version: str,
    source: str,
) -> Package:
    """Record that a package version is now installed (install or upgrade).

    Raises:
        PackageNotFoundError: If the package is unknown.
    """
    package = resolve_package(session, slug, package_type)
    package.installed_version = version
    package.installed_source = source
    package.updated_at = datetime.now()
    session.flush()
    logger.info("Recorded install of %s/%s %s", package_type.value, slug, version)
    return package


def record_latest(
    session: Session,
    slug: str,
    package_type: PackageType,
    version: str,
    source: str,
) -> Package:
    """Record the latest version reported by an update check.

    Raises:
        PackageNotFoundError: If the package is unknown.
    """
    package = resolve_package(session, slug, package_type)
    package.latest_version = version
    package.latest_source = source
    package.updated_at = datetime.now()
    session.flush()
    return package


def import_packages_from_file(
    session: Session,
    path: Path,
    *,
    update_existing: bool = True,
) -> PackageBulkImportResult:
    """Import package descriptors from a YAML/JSON file.

    Args:
        session: SQLAlchemy session.
        path: Descriptor file.
        update_existing: Update packages that already exist; otherwise
            report them as failures.

    Returns:
        PackageBulkImportResult with one result per descriptor.
    """
    try:
        schemas = load_packages(path)
    except ValidationError as e:
        return _failed_import(path, f"Validation error: {e}")
    except yaml.YAMLError as e:
        return _failed_import(path, f"Invalid YAML: {e}")
    except (OSError, ValueError) as e:
        return _failed_import(path, str(e))

    results: list[PackageImportResult] = []
    for schema in schemas:
        existing = get_package_or_none(session, schema.slug, schema.type)
        if existing is not None and not update_existing:
            results.append(
                PackageImportResult(
                    slug=schema.slug,
                    type=schema.type.value,
                    success=False,
                    error=f"Package already exists: {schema.type.value}/{schema.slug}",
                )
            )
            continue
        _, created = create_or_update_package(session, schema)
        results.append(
            PackageImportResult(
                slug=schema.slug,
                type=schema.type.value,
                success=True,
                created=created,
            )
        )

    succeeded = sum(1 for r in results if r.success)
    return PackageBulkImportResult(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


def _failed_import(path: Path, error: str) -> PackageBulkImportResult:
    return PackageBulkImportResult(
        total=1,
        succeeded=0,
        failed=1,
        results=[PackageImportResult(slug=path.stem, success=False, error=error)],
    )


# Whitelist


def whitelist_contains(session: Session, slug: str, package_type: PackageType) -> bool:
    """Check whether a package is whitelisted."""
    stmt = select(WhitelistEntry.id).where(
        WhitelistEntry.slug == slug.lower(),
        WhitelistEntry.type == package_type.value,
    )
    return session.execute(stmt).first() is not None


def list_whitelist(session: Session, package_type: PackageType) -> list[str]:
    """List whitelisted slugs of one type, in the order they were added."""
    stmt = (
        select(WhitelistEntry.slug)
        .where(WhitelistEntry.type == package_type.value)
        .order_by(WhitelistEntry.id)
    )
    return list(session.execute(stmt).scalars().all())


def _normalize_slugs(slugs: Iterable[str]) -> list[str]:
    """Lower-case and de-duplicate slugs, keeping first-seen order."""
    seen: dict[str, None] = {}
    for slug in slugs:
        slug = slug.strip().lower()
        if slug:
            seen.setdefault(slug)
    return list(seen)


def add_to_whitelist(
    session: Session,
    package_type: PackageType,
    slugs: Iterable[str],
) -> WhitelistChanged:
    """Whitelist packages.

    Returns:
        WhitelistChanged with the before/after snapshots.
    """
    before = list_whitelist(session, package_type)
    for slug in _normalize_slugs(slugs):
        if slug not in before:
            session.add(WhitelistEntry(slug=slug, type=package_type.value))
    session.flush()
    after = list_whitelist(session, package_type)
    return WhitelistChanged(type=package_type, before=tuple(before), after=tuple(after))


def remove_from_whitelist(
    session: Session,
    package_type: PackageType,
    slugs: Iterable[str],
) -> WhitelistChanged:
    """Remove packages from the whitelist.

    Returns:
        WhitelistChanged with the before/after snapshots.
    """
    before = list_whitelist(session, package_type)
    remove = set(_normalize_slugs(slugs))
    stmt = select(WhitelistEntry).where(
        WhitelistEntry.type == package_type.value,
        WhitelistEntry.slug.in_(remove),
    )
    for entry in session.execute(stmt).scalars().all():
        session.delete(entry)
    session.flush()
    after = list_whitelist(session, package_type)
    return WhitelistChanged(type=package_type, before=tuple(before), after=tuple(after))


def replace_whitelist(
    session: Session,
    package_type: PackageType,
    slugs: Iterable[str],
) -> WhitelistChanged:
    """Set the whitelist of one type to exactly the given slugs.

    Returns:
        WhitelistChanged with the before/after snapshots.
    """
    wanted = _normalize_slugs(slugs)
    before = list_whitelist(session, package_type)
    remove_from_whitelist(session, package_type, [s for s in before if s not in wanted])
    add_to_whitelist(session, package_type, wanted)
    after = list_whitelist(session, package_type)
    return WhitelistChanged(type=package_type, before=tuple(before), after=tuple(after))


# Repositories


class PackageRepository:
    """Package lookups backed by the database.

    Each call runs in its own short session and returns snapshots, so the
    repository can be shared between threads.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def resolve(
        self, slug: str, package_type: PackageType | None = None
    ) -> PackageInfo:
        """Resolve a package to a snapshot.

        Raises:
            PackageNotFoundError: If nothing matches.
            AmbiguousPackageError: If more than one package matches.
        """
        with get_session(self.session_factory) as session:
            return package_to_info(resolve_package(session, slug, package_type))

    def all(self, package_type: PackageType | None = None) -> list[PackageInfo]:
        with get_session(self.session_factory) as session:
            return [package_to_info(p) for p in list_packages(session, package_type)]


class WhitelistRepository:
    """Whitelist membership backed by the database."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def contains(self, slug: str, package_type: PackageType) -> bool:
        with get_session(self.session_factory) as session:
            return whitelist_contains(session, slug, package_type)

    def slugs(self, package_type: PackageType) -> list[str]:
        with get_session(self.session_factory) as session:
            return list_whitelist(session, package_type)

    def add(self, package_type: PackageType, slugs: Iterable[str]) -> WhitelistChanged:
        with get_session(self.session_factory) as session:
            return add_to_whitelist(session, package_type, slugs)

    def remove(
        self, package_type: PackageType, slugs: Iterable[str]
    ) -> WhitelistChanged:
        with get_session(self.session_factory) as session:
            return remove_from_whitelist(session, package_type, slugs)

    def replace(
        self, package_type: PackageType, slugs: Iterable[str]
    ) -> WhitelistChanged:
        with get_session(self.session_factory) as session:
            return replace_whitelist(session, package_type, slugs)


__all__ = [
    "AmbiguousPackageError",
    "PackageInfo",
    "PackageNotFoundError",
    "PackageRepository",
    "WhitelistRepository",
    "add_to_whitelist",
    "create_or_update_package",
    "get_package_or_none",
    "import_packages_from_file",
    "list_packages",
    "list_whitelist",
    "package_to_info",
    "package_to_schema",
    "record_install",
    "record_latest",
    "remove_from_whitelist",
    "replace_whitelist",
    "resolve_package",
    "schema_to_package",
    "update_package_from_schema",
    "whitelist_contains",
]
