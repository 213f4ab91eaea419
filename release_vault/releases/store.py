"""Archive store for release artifacts.

This module handles:
- Version-addressed storage of artifact bytes under a root directory
- Per-key file locks so only one writer fetches and commits a release
- Atomic commits (temp file + rename) with a JSON metadata sidecar
- Lookup of stored artifacts for index builders and downloads

The metadata sidecar is written last and acts as the commit marker:
a key "exists" only once its sidecar is in place, so readers never
observe a partially written artifact.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from release_vault.errors import ArtifactNotFoundError, IntegrityError, StorageError
from release_vault.releases.keys import (
    ARTIFACT_SUFFIX,
    METADATA_SUFFIX,
    SLUG_PATTERN,
    StorageKey,
    normalize_slug,
    parse_artifact_filename,
)
from release_vault.releases.models import ArchivedArtifact
from release_vault.types import PackageType

logger = logging.getLogger(__name__)

# Default chunk size for hashing and copying
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

# Polling interval while waiting for a lock with a timeout
LOCK_POLL_INTERVAL = 0.05


def compute_digests(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> tuple[int, str, str]:
    """Compute size, SHA-256 and SHA-1 of a file in one pass.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        Tuple of (size in bytes, sha256 hex digest, sha1 hex digest).
    """
    sha256 = hashlib.sha256()
    sha1 = hashlib.sha1()
    size = 0
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
            sha1.update(chunk)
            size += len(chunk)
    return size, sha256.hexdigest(), sha1.hexdigest()


@contextmanager
def key_lock(
    lock_file: Path,
    description: str,
    timeout: float | None = None,
) -> Iterator[None]:
    """Acquire an exclusive file lock.

    Every acquisition opens its own descriptor, so the lock excludes other
    threads in this process as well as other processes.

    Args:
        lock_file: Path of the lock file (created if missing).
        description: Human-readable name of what is locked, for logging.
        timeout: Lock acquisition timeout in seconds (None = blocking).

    Yields:
        None when lock is acquired.

    Raises:
        TimeoutError: If lock cannot be acquired within timeout.
        StorageError: If the lock file cannot be created.
    """
    logger.debug("Acquiring lock for %s", description)

    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise StorageError(f"Cannot open lock file {lock_file}: {e}") from e
    lock_acquired = False
    try:
        if timeout is not None:
            start = time.monotonic()
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    lock_acquired = True
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= timeout:
                        raise TimeoutError(
                            f"Timeout waiting for lock on {description}"
                        ) from None
                    time.sleep(LOCK_POLL_INTERVAL)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX)
            lock_acquired = True

        logger.debug("Lock acquired for %s", description)
        yield
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Lock released for %s", description)
        os.close(fd)


class PendingArtifact:
    """A temp file reserved for one key while its writer holds the lock.

    Obtained from ArchiveStore.open_writer(). The caller fills ``path`` and
    then calls commit(); if the writer context exits without a commit the
    temp file is removed.
    """

    def __init__(self, store: ArchiveStore, key: StorageKey, path: Path) -> None:
        self.store = store
        self.key = key
        self.path = path
        self.committed = False

    def commit(
        self,
        source: str = "",
        expected_size: int | None = None,
        expected_sha256: str | None = None,
    ) -> ArchivedArtifact:
        """Verify the temp file and move it into place.

        Args:
            source: Source location recorded in the metadata.
            expected_size: Declared size in bytes, if any.
            expected_sha256: Declared SHA-256, if any.

        Returns:
            ArchivedArtifact for the committed bytes.

        Raises:
            IntegrityError: If the payload is empty or fails a declared check.
            StorageError: If the artifact or its metadata cannot be written.
        """
        try:
            size, sha256, sha1 = compute_digests(self.path)
        except OSError as e:
            raise StorageError(
                f"Cannot read pending artifact for {self.key}: {e}"
            ) from e

        if size == 0:
            raise IntegrityError(
                f"Empty payload for {self.key}", code="empty_payload"
            )
        if expected_size is not None and size != expected_size:
            raise IntegrityError(
                f"Size mismatch for {self.key}: "
                f"expected {expected_size} bytes, got {size}",
                code="size_mismatch",
            )
        if expected_sha256 and sha256 != expected_sha256.lower():
            raise IntegrityError(
                f"Checksum mismatch for {self.key}: "
                f"expected {expected_sha256}, got {sha256}",
                code="checksum_mismatch",
            )

        artifact = ArchivedArtifact(
            type=self.key.type,
            slug=self.key.slug,
            version=self.key.version,
            path=self.key.artifact_path.as_posix(),
            size_bytes=size,
            sha256=sha256,
            sha1=sha1,
            archived_at=datetime.now(timezone.utc),
            source=source,
        )

        final_path = self.store.artifact_file(self.key)
        try:
            os.replace(self.path, final_path)
        except OSError as e:
            raise StorageError(f"Cannot store artifact for {self.key}: {e}") from e

        try:
            self.store._write_metadata(self.key, artifact)
        except OSError as e:
            # Without its sidecar the artifact is not committed
            final_path.unlink(missing_ok=True)
            raise StorageError(
                f"Cannot write metadata for {self.key}: {e}"
            ) from e

        self.committed = True
        logger.info(
            "Stored %s (%d bytes, sha256: %s)",
            artifact.path,
            size,
            sha256[:16] + "...",
        )
        return artifact


class ArchiveStore:
    """Version-addressed storage for release artifacts.

    Args:
        root: Root directory of the store.
        lock_timeout: Default timeout in seconds for per-key locks
            (None = block until acquired).
    """

    def __init__(self, root: Path, lock_timeout: float | None = None) -> None:
        self.root = Path(root)
        self.lock_timeout = lock_timeout

    def __repr__(self) -> str:
        return f"<ArchiveStore(root='{self.root}')>"

    # Paths

    def artifact_file(self, key: StorageKey) -> Path:
        """Absolute path of the artifact for a key."""
        return self.root / key.artifact_path

    def metadata_file(self, key: StorageKey) -> Path:
        """Absolute path of the metadata sidecar for a key."""
        return self.root / key.metadata_path

    # Queries

    def exists(self, key: StorageKey) -> bool:
        """Return True if an artifact has been committed under key."""
        return self.metadata_file(key).is_file()

    def stat(self, key: StorageKey) -> ArchivedArtifact:
        """Read the metadata of a stored artifact.

        Raises:
            ArtifactNotFoundError: If nothing is stored under key.
            StorageError: If the metadata cannot be read.
        """
        return self._read_metadata(self.metadata_file(key), key)

    def get(self, key: StorageKey) -> BinaryIO:
        """Open a stored artifact for reading.

        The caller is responsible for closing the returned stream.

        Raises:
            ArtifactNotFoundError: If nothing is stored under key.
            StorageError: If the artifact cannot be opened.
        """
        if not self.exists(key):
            raise ArtifactNotFoundError(f"Artifact not found: {key}")
        try:
            return self.artifact_file(key).open("rb")
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Artifact file missing for {key}") from e
        except OSError as e:
            raise StorageError(f"Cannot open artifact for {key}: {e}") from e

    def verify(self, key: StorageKey) -> bool:
        """Check stored bytes against their recorded size and checksum.

        Archiving never re-validates a cache hit; this is the explicit check.

        Raises:
            ArtifactNotFoundError: If nothing is stored under key.
            StorageError: If the artifact cannot be read.
        """
        artifact = self.stat(key)
        try:
            size, sha256, _ = compute_digests(self.artifact_file(key))
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Cannot read artifact for {key}: {e}") from e
        return size == artifact.size_bytes and sha256 == artifact.sha256

    def list_versions(
        self, package_type: PackageType, slug: str
    ) -> list[ArchivedArtifact]:
        """List stored artifacts of one package, oldest first.

        Sidecars whose recorded version does not match their filename
        (copied or renamed by hand) are skipped with a warning; such a
        sidecar could never be found again by key.

        Args:
            package_type: Package type.
            slug: Package slug.

        Returns:
            List of ArchivedArtifact, ordered by archive time.
        """
        slug = normalize_slug(slug)
        package_dir = self.root / package_type.value / slug
        if not package_dir.is_dir():
            return []

        artifacts: list[ArchivedArtifact] = []
        pattern = f"{slug}-*{ARTIFACT_SUFFIX}{METADATA_SUFFIX}"
        for meta_path in sorted(package_dir.glob(pattern)):
            artifact = self._read_metadata(meta_path, None)
            artifact_name = meta_path.name.removesuffix(METADATA_SUFFIX)
            version = parse_artifact_filename(slug, artifact_name)
            if (
                version != artifact.version
                or artifact.slug != slug
                or artifact.type != package_type
            ):
                logger.warning(
                    "Ignoring %s: metadata describes %s/%s@%s",
                    meta_path,
                    artifact.type.value,
                    artifact.slug,
                    artifact.version,
                )
                continue
            artifacts.append(artifact)

        artifacts.sort(key=lambda a: (a.archived_at, a.version))
        return artifacts

    def list_all(self) -> list[ArchivedArtifact]:
        """List every stored artifact, grouped by type and slug."""
        artifacts: list[ArchivedArtifact] = []
        for package_type in PackageType:
            type_dir = self.root / package_type.value
            if not type_dir.is_dir():
                continue
            for package_dir in sorted(type_dir.iterdir()):
                if not package_dir.is_dir() or not SLUG_PATTERN.match(package_dir.name):
                    continue
                artifacts.extend(self.list_versions(package_type, package_dir.name))
        return artifacts

    def info(self) -> dict[str, object]:
        """Summarize the store contents."""
        artifacts = self.list_all()
        return {
            "root": str(self.root),
            "exists": self.root.exists(),
            "artifact_count": len(artifacts),
            "package_count": len({(a.type, a.slug) for a in artifacts}),
            "total_size_bytes": sum(a.size_bytes for a in artifacts),
        }

    # Writes

    @contextmanager
    def lock(self, key: StorageKey, timeout: float | None = None) -> Iterator[None]:
        """Hold the per-key lock.

        Raises:
            TimeoutError: If the lock cannot be acquired within timeout.
            StorageError: If the lock file cannot be created.
        """
        if timeout is None:
            timeout = self.lock_timeout
        with key_lock(self.root / key.lock_path, str(key), timeout=timeout):
            yield

    @contextmanager
    def open_writer(
        self,
        key: StorageKey,
        timeout: float | None = None,
    ) -> Iterator[PendingArtifact | None]:
        """Reserve a key for writing.

        Takes the per-key lock and re-checks existence. Yields None when the
        key is already committed, otherwise a PendingArtifact whose temp file
        lives next to the final path so the commit is an atomic rename.

        Raises:
            TimeoutError: If the lock cannot be acquired within timeout.
            StorageError: If the temp file cannot be created.
        """
        with self.lock(key, timeout):
            if self.exists(key):
                yield None
                return

            target_dir = self.artifact_file(key).parent
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=target_dir, prefix=f".{key.basename}.", suffix=".part"
                )
                os.close(fd)
            except OSError as e:
                raise StorageError(f"Cannot create temp file for {key}: {e}") from e

            pending = PendingArtifact(self, key, Path(tmp_name))
            try:
                yield pending
            finally:
                if not pending.committed:
                    pending.path.unlink(missing_ok=True)

    def put(
        self,
        key: StorageKey,
        stream: BinaryIO,
        *,
        source: str = "",
        expected_size: int | None = None,
        expected_sha256: str | None = None,
        timeout: float | None = None,
    ) -> ArchivedArtifact:
        """Store a byte stream under key unless something is already there.

        Args:
            key: Storage key.
            stream: Readable binary stream with the artifact bytes.
            source: Source location recorded in the metadata.
            expected_size: Declared size in bytes, if any.
            expected_sha256: Declared SHA-256, if any.
            timeout: Lock timeout override.

        Returns:
            The stored artifact (the existing one if key was already present).

        Raises:
            IntegrityError: If the payload is empty or fails a declared check.
            StorageError: If the store cannot be written.
            TimeoutError: If the lock cannot be acquired within timeout.
        """
        with self.open_writer(key, timeout) as pending:
            if pending is None:
                logger.debug("Artifact already stored for %s", key)
                return self.stat(key)
            try:
                with pending.path.open("wb") as f:
                    while chunk := stream.read(HASH_CHUNK_SIZE):
                        f.write(chunk)
            except OSError as e:
                raise StorageError(f"Cannot write artifact for {key}: {e}") from e
            return pending.commit(
                source=source,
                expected_size=expected_size,
                expected_sha256=expected_sha256,
            )

    # Metadata sidecars

    def _write_metadata(self, key: StorageKey, artifact: ArchivedArtifact) -> None:
        """Atomically write the metadata sidecar for key."""
        meta_path = self.metadata_file(key)
        fd, tmp_name = tempfile.mkstemp(
            dir=meta_path.parent, prefix=f".{key.basename}.", suffix=".meta"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(artifact.to_dict(), f, indent=2, sort_keys=True)
                f.write("\n")
            os.replace(tmp_name, meta_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read_metadata(
        self, meta_path: Path, key: StorageKey | None
    ) -> ArchivedArtifact:
        """Load an ArchivedArtifact from a sidecar file."""
        label = str(key) if key is not None else str(meta_path)
        try:
            with meta_path.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Artifact not found: {label}") from e
        except OSError as e:
            raise StorageError(f"Cannot read metadata for {label}: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt metadata for {label}: {e}") from e

        try:
            return ArchivedArtifact.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise StorageError(f"Invalid metadata for {label}: {e}") from e


__all__ = [
    "ArchiveStore",
    "HASH_CHUNK_SIZE",
    "PendingArtifact",
    "compute_digests",
    "key_lock",
]
