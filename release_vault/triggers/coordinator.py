"""Archive coordinator: turn lifecycle events into archive requests.

The coordinator is the error boundary of the archiving subsystem. It
resolves the packages affected by an event, asks the release manager to
archive their releases, and records one BatchItem per release. A failure
for one package is logged and reported, never raised, so sibling packages
in the same batch still get archived and the triggering operation (an
upgrade, an update check) is never interrupted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from release_vault.errors import ArchiveError
from release_vault.releases.models import ArchivedArtifact, ArchiveResult, Release
from release_vault.triggers.events import (
    ArchiveEvent,
    UpdatesAvailable,
    UpgradeCompleted,
    WhitelistAdded,
    WhitelistChanged,
)
from release_vault.types import ItemStatus, PackageIdentity, PackageType

if TYPE_CHECKING:
    from release_vault.packages.service import PackageInfo

logger = logging.getLogger(__name__)


class PackageLookup(Protocol):
    """Resolves a {slug, type} filter to a package snapshot."""

    def resolve(
        self, slug: str, package_type: PackageType | None = None
    ) -> PackageInfo: ...


class WhitelistLookup(Protocol):
    """Answers whitelist membership."""

    def contains(self, slug: str, package_type: PackageType) -> bool: ...


class Archiver(Protocol):
    """Archives a release (the ReleaseManager interface)."""

    def archive(self, release: Release) -> ArchiveResult: ...


@dataclass
class BatchItem:
    """Outcome for one release (or one unresolvable package) in a batch."""

    package: PackageIdentity
    status: ItemStatus
    version: str | None = None
    message: str = ""
    code: str | None = None
    artifact: ArchivedArtifact | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.package.type.value,
            "slug": self.package.slug,
            "version": self.version,
            "status": self.status.value,
            "message": self.message,
            "code": self.code,
            "sha256": self.artifact.sha256 if self.artifact else None,
        }


@dataclass
class BatchReport:
    """Per-item results of handling one event."""

    items: list[BatchItem] = field(default_factory=list)

    def add(self, item: BatchItem) -> None:
        self.items.append(item)

    def extend(self, items: Iterable[BatchItem]) -> None:
        self.items.extend(items)

    def _count(self, status: ItemStatus) -> int:
        return sum(1 for item in self.items if item.status == status)

    @property
    def archived(self) -> int:
        return self._count(ItemStatus.ARCHIVED)

    @property
    def cached(self) -> int:
        return self._count(ItemStatus.CACHED)

    @property
    def skipped(self) -> int:
        return self._count(ItemStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ItemStatus.FAILED)

    @property
    def succeeded(self) -> int:
        return self.archived + self.cached

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def failures(self) -> list[BatchItem]:
        return [item for item in self.items if item.status == ItemStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "archived": self.archived,
            "cached": self.cached,
            "skipped": self.skipped,
            "failed": self.failed,
            "items": [item.to_dict() for item in self.items],
        }


class ArchiveCoordinator:
    """Translates lifecycle events into archive requests.

    Args:
        packages: Package lookup (e.g. PackageRepository).
        whitelist: Whitelist lookup (e.g. WhitelistRepository).
        manager: Release archiver (e.g. ReleaseManager).
    """

    def __init__(
        self,
        packages: PackageLookup,
        whitelist: WhitelistLookup,
        manager: Archiver,
    ) -> None:
        self.packages = packages
        self.whitelist = whitelist
        self.manager = manager

    def handle(self, event: ArchiveEvent) -> BatchReport:
        """Dispatch an event to its handler."""
        if isinstance(event, WhitelistAdded):
            report = self.on_whitelist_added(event)
        elif isinstance(event, WhitelistChanged):
            report = self.on_whitelist_changed(event)
        elif isinstance(event, UpdatesAvailable):
            report = self.on_updates_available(event)
        elif isinstance(event, UpgradeCompleted):
            report = self.on_upgrade_completed(event)
        else:
            raise TypeError(f"Unsupported event: {type(event).__name__}")

        if report.failed:
            logger.warning(
                "%s: %d archived, %d cached, %d failed",
                type(event).__name__,
                report.archived,
                report.cached,
                report.failed,
            )
        else:
            logger.info(
                "%s: %d archived, %d cached",
                type(event).__name__,
                report.archived,
                report.cached,
            )
        return report

    def on_whitelist_added(self, event: WhitelistAdded) -> BatchReport:
        """Archive installed and latest releases of newly whitelisted packages.

        Archiving at whitelist time means a checksum is available as soon as
        the package shows up in the repository index.
        """
        return self._archive_packages(event.type, event.slugs)

    def on_whitelist_changed(self, event: WhitelistChanged) -> BatchReport:
        """Archive only packages that were not whitelisted before."""
        added = event.added
        if not added:
            return BatchReport()
        return self._archive_packages(event.type, added)

    def on_updates_available(self, event: UpdatesAvailable) -> BatchReport:
        """Archive new versions of whitelisted packages as updates appear."""
        report = BatchReport()
        for offer in event.offers:
            identity = offer.identity
            try:
                if not self.whitelist.contains(offer.slug, offer.type):
                    continue
                package = self.packages.resolve(offer.slug, offer.type)
                identity = package.identity
                release = Release(
                    package=identity,
                    version=offer.new_version,
                    source=offer.package_url,
                )
            except ArchiveError as e:
                report.add(self._failure(identity, offer.new_version, e))
                continue
            except Exception as e:
                report.add(self._unexpected(identity, offer.new_version, e))
                continue
            report.add(self._archive_release(release))
        return report

    def on_upgrade_completed(self, event: UpgradeCompleted) -> BatchReport:
        """Archive the now-installed and latest releases after an upgrade."""
        identity = PackageIdentity(slug=event.slug, type=event.type)
        try:
            whitelisted = self.whitelist.contains(event.slug, event.type)
        except Exception as e:
            return BatchReport(items=[self._unexpected(identity, None, e)])

        if not whitelisted:
            return BatchReport()
        return self._archive_packages(event.type, [event.slug])

    def archive_package(self, package_type: PackageType, slug: str) -> BatchReport:
        """Archive one package on demand, whitelisted or not."""
        report = BatchReport(items=self._archive_package(package_type, slug))
        if report.failed:
            logger.warning("Archiving %s/%s failed", package_type.value, slug)
        return report

    def _archive_packages(
        self, package_type: PackageType, slugs: Iterable[str]
    ) -> BatchReport:
        report = BatchReport()
        for slug in slugs:
            report.extend(self._archive_package(package_type, slug))
        return report

    def _archive_package(self, package_type: PackageType, slug: str) -> list[BatchItem]:
        """Archive the installed and latest releases of one package."""
        identity = PackageIdentity(slug=slug, type=package_type)
        try:
            package = self.packages.resolve(slug, package_type)
            installed = package.installed_release
            latest = package.latest_release
        except ArchiveError as e:
            return [self._failure(identity, None, e)]
        except Exception as e:
            return [self._unexpected(identity, None, e)]

        if installed is None:
            logger.debug("Skipping %s: not installed", identity)
            return [
                BatchItem(
                    package=identity,
                    status=ItemStatus.SKIPPED,
                    message="Package is not installed",
                )
            ]

        releases = [installed]
        if latest is not None and latest.version != installed.version:
            releases.append(latest)
        return [self._archive_release(release) for release in releases]

    def _archive_release(self, release: Release) -> BatchItem:
        try:
            result = self.manager.archive(release)
        except Exception as e:
            return self._unexpected(release.package, release.version, e)

        if not result.success:
            # The release manager has already logged the failure
            return BatchItem(
                package=release.package,
                status=ItemStatus.FAILED,
                version=release.version,
                message=result.message,
                code=result.code,
            )

        return BatchItem(
            package=release.package,
            status=ItemStatus.CACHED if result.cached else ItemStatus.ARCHIVED,
            version=release.version,
            message=result.message,
            artifact=result.artifact,
        )

    def _failure(
        self, identity: PackageIdentity, version: str | None, error: ArchiveError
    ) -> BatchItem:
        logger.error(
            "Error archiving %s%s: %s",
            identity,
            f" {version}" if version else "",
            error,
        )
        return BatchItem(
            package=identity,
            status=ItemStatus.FAILED,
            version=version,
            message=str(error),
            code=error.code,
        )

    def _unexpected(
        self, identity: PackageIdentity, version: str | None, error: Exception
    ) -> BatchItem:
        logger.exception(
            "Unexpected error archiving %s%s",
            identity,
            f" {version}" if version else "",
        )
        return BatchItem(
            package=identity,
            status=ItemStatus.FAILED,
            version=version,
            message=str(error),
            code="internal_error",
        )


__all__ = [
    "ArchiveCoordinator",
    "Archiver",
    "BatchItem",
    "BatchReport",
    "PackageLookup",
    "WhitelistLookup",
]
