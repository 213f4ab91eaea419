"""Release manager: archive each package version exactly once.

The manager turns a Release into a stored artifact:

1. Derive the canonical storage key from (type, slug, version).
2. Return immediately if the store already holds the key. Existing bytes
   are not re-fetched or re-validated.
3. Otherwise take the per-key lock, re-check, fetch the bytes into a temp
   file next to the final path and commit it atomically.

Failures are returned as ArchiveResult values carrying a typed error; the
caller decides whether to log-and-continue or surface them.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from types import TracebackType
from typing import TYPE_CHECKING, BinaryIO

import httpx

from release_vault.errors import (
    ArchiveError,
    FetchError,
    IntegrityError,
    StorageError,
)
from release_vault.releases.fetch import (
    FETCH_TIMEOUT,
    fetch_to_file,
    is_remote_source,
    redact_url,
)
from release_vault.releases.keys import derive_key
from release_vault.releases.models import ArchivedArtifact, ArchiveResult, Release
from release_vault.releases.store import ArchiveStore
from release_vault.types import PackageIdentity

if TYPE_CHECKING:
    from release_vault.config import Settings

logger = logging.getLogger(__name__)


class ReleaseManager:
    """Archives releases into an ArchiveStore.

    Args:
        store: Archive store receiving the artifacts.
        client: HTTPX client for remote sources. One is created on first use
            (and closed by close()) if not provided.
        fetch_timeout: Timeout in seconds for obtaining release bytes.
        lock_timeout: Timeout in seconds for the per-key lock
            (None = the store's default).
        verify_tls: TLS verification for a manager-created client.
        user_agent: User-Agent for a manager-created client.
    """

    def __init__(
        self,
        store: ArchiveStore,
        client: httpx.Client | None = None,
        fetch_timeout: float = FETCH_TIMEOUT,
        lock_timeout: float | None = None,
        verify_tls: bool = True,
        user_agent: str = "release-vault",
    ) -> None:
        self.store = store
        self.fetch_timeout = fetch_timeout
        self.lock_timeout = lock_timeout
        self._verify_tls = verify_tls
        self._user_agent = user_agent
        self._client = client
        self._owns_client = False
        self._client_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> ReleaseManager:
        """Create a manager (and its store) from application settings."""
        store = ArchiveStore(settings.storage_dir, lock_timeout=settings.lock_timeout)
        return cls(
            store,
            fetch_timeout=settings.fetch_timeout,
            lock_timeout=settings.lock_timeout,
            verify_tls=settings.verify_tls,
            user_agent=settings.user_agent,
        )

    @property
    def client(self) -> httpx.Client:
        """HTTPX client used for remote sources."""
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    follow_redirects=True,
                    verify=self._verify_tls,
                    headers={"User-Agent": self._user_agent},
                )
                self._owns_client = True
            return self._client

    def close(self) -> None:
        """Close the HTTPX client if this manager created it."""
        with self._client_lock:
            if self._owns_client and self._client is not None:
                self._client.close()
                self._client = None
                self._owns_client = False

    def __enter__(self) -> ReleaseManager:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def archive(self, release: Release) -> ArchiveResult:
        """Ensure the artifact for a release is in the store.

        Args:
            release: Release to archive.

        Returns:
            ArchiveResult; ``cached`` is True when nothing had to be fetched.
        """
        try:
            key = derive_key(release.package, release.version)

            if self.store.exists(key):
                logger.debug("Release %s already archived", release)
                return ArchiveResult(
                    release=release,
                    success=True,
                    artifact=self.store.stat(key),
                    cached=True,
                )

            with self.store.open_writer(key, timeout=self.lock_timeout) as pending:
                if pending is None:
                    logger.info(
                        "Release %s was archived while waiting for lock", release
                    )
                    return ArchiveResult(
                        release=release,
                        success=True,
                        artifact=self.store.stat(key),
                        cached=True,
                    )

                client = self.client if is_remote_source(release.source) else None
                fetch_to_file(
                    release.source,
                    pending.path,
                    client=client,
                    timeout=self.fetch_timeout,
                )
                artifact = pending.commit(
                    source=redact_url(release.source),
                    expected_size=release.expected_size,
                    expected_sha256=release.expected_sha256,
                )

        except IntegrityError as e:
            logger.error("Integrity check failed for %s: %s", release, e)
            return ArchiveResult(release=release, success=False, error=e)
        except FetchError as e:
            logger.error(
                "Failed to fetch %s from %s: %s",
                release,
                redact_url(release.source),
                e,
            )
            return ArchiveResult(release=release, success=False, error=e)
        except StorageError as e:
            logger.error("Storage error archiving %s: %s", release, e)
            return ArchiveResult(release=release, success=False, error=e)
        except ArchiveError as e:
            logger.error("Cannot archive %s: %s", release, e)
            return ArchiveResult(release=release, success=False, error=e)
        except TimeoutError as e:
            error = StorageError(
                f"Timed out waiting for archive lock on {release}: {e}",
                code="lock_timeout",
            )
            logger.error("%s", error)
            return ArchiveResult(release=release, success=False, error=error)

        logger.info("Archived %s (%d bytes)", release, artifact.size_bytes)
        return ArchiveResult(release=release, success=True, artifact=artifact)

    def archive_many(self, releases: Iterable[Release]) -> list[ArchiveResult]:
        """Archive several releases, one result per release."""
        return [self.archive(release) for release in releases]

    def is_archived(self, package: PackageIdentity, version: str) -> bool:
        """Return True if the package version is in the store.

        Raises:
            ResolutionError: If the slug or version is unusable.
        """
        return self.store.exists(derive_key(package, version))

    def get_artifact(self, package: PackageIdentity, version: str) -> ArchivedArtifact:
        """Get metadata for an archived package version.

        Raises:
            ResolutionError: If the slug or version is unusable.
            ArtifactNotFoundError: If the version is not archived.
        """
        return self.store.stat(derive_key(package, version))

    def open_artifact(self, package: PackageIdentity, version: str) -> BinaryIO:
        """Open the bytes of an archived package version.

        Raises:
            ResolutionError: If the slug or version is unusable.
            ArtifactNotFoundError: If the version is not archived.
        """
        return self.store.get(derive_key(package, version))

    def list_archived(self, package: PackageIdentity) -> list[ArchivedArtifact]:
        """List archived versions of a package."""
        return self.store.list_versions(package.type, package.slug)


__all__ = ["ReleaseManager"]
