"""Release source fetching.

This module handles:
- Downloading release archives over HTTP(S) with redirects and a deadline
- Copying local release archives
- Building a zip archive from an installed package directory

Every failure is raised as FetchError with a stable code.
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit
from urllib.request import url2pathname

import httpx

from release_vault.errors import FetchError, IntegrityError

logger = logging.getLogger(__name__)

# Timeout for a whole fetch (seconds)
FETCH_TIMEOUT = 300.0

# Chunk size for streaming copies (bytes)
FETCH_CHUNK_SIZE = 64 * 1024  # 64 KB

REMOTE_SCHEMES = ("http", "https")

# Entries never packed into an archive built from a directory
EXCLUDED_NAMES = frozenset({".git", ".svn", ".hg", ".DS_Store"})


@dataclass
class FetchResult:
    """Result of obtaining release bytes into a local file."""

    path: Path
    size_bytes: int
    sha256: str


def redact_url(url: str) -> str:
    """Strip credentials from a URL so it can be logged."""
    parts = urlsplit(url)
    if parts.username is None and parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, ""))


def is_remote_source(source: str) -> bool:
    """Return True if the source is an HTTP(S) URL."""
    return urlsplit(source).scheme.lower() in REMOTE_SCHEMES


def local_source_path(source: str) -> Path:
    """Resolve a local source (plain path or file:// URL) to a Path.

    Raises:
        FetchError: If the source uses a scheme that is not supported.
    """
    parts = urlsplit(source)
    scheme = parts.scheme.lower()
    if scheme == "file":
        return Path(url2pathname(parts.path))
    # Single letters are Windows drive letters, not schemes
    if scheme and len(scheme) > 1:
        raise FetchError(
            f"Unsupported source scheme '{scheme}' in {redact_url(source)}",
            code="unsupported_source",
        )
    return Path(source)


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = FETCH_TIMEOUT,
    chunk_size: int = FETCH_CHUNK_SIZE,
) -> FetchResult:
    """Download a URL to a file.

    The client is expected to follow redirects. The timeout bounds each
    network operation and the download as a whole.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        FetchResult with path, size and checksum.

    Raises:
        FetchError: If the download fails or exceeds the timeout.
    """
    safe_url = redact_url(url)
    logger.info("Downloading %s to %s", safe_url, dest_path)
    deadline = time.monotonic() + timeout

    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()

            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    if time.monotonic() > deadline:
                        raise FetchError(
                            f"Timeout downloading {safe_url} after {timeout:.0f}s",
                            code="timeout",
                        )
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        raise FetchError(
            f"HTTP error downloading {safe_url}: "
            f"{e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise FetchError(
            f"Timeout downloading {safe_url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise FetchError(
            f"Network error downloading {safe_url}: {e}",
            code="network_error",
        ) from e
    except OSError as e:
        raise FetchError(
            f"Cannot write download of {safe_url} to {dest_path}: {e}",
            code="write_error",
        ) from e

    logger.info(
        "Downloaded %s (%d bytes, checksum: %s)",
        safe_url,
        total_bytes,
        sha256.hexdigest()[:16] + "...",
    )
    return FetchResult(
        path=dest_path,
        size_bytes=total_bytes,
        sha256=sha256.hexdigest(),
    )


def copy_local_file(
    src_path: Path,
    dest_path: Path,
    chunk_size: int = FETCH_CHUNK_SIZE,
) -> FetchResult:
    """Copy a local release archive to a file.

    Raises:
        FetchError: If the source cannot be read.
    """
    logger.info("Copying %s to %s", src_path, dest_path)

    total_bytes = 0
    sha256 = hashlib.sha256()
    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        with src_path.open("rb") as src, dest_path.open("wb") as dest:
            while chunk := src.read(chunk_size):
                dest.write(chunk)
                sha256.update(chunk)
                total_bytes += len(chunk)
    except OSError as e:
        raise FetchError(
            f"Cannot read {src_path}: {e}",
            code="read_error",
        ) from e

    return FetchResult(
        path=dest_path,
        size_bytes=total_bytes,
        sha256=sha256.hexdigest(),
    )


def _iter_directory(src_dir: Path) -> list[Path]:
    """List files under a directory in a stable order, skipping VCS data."""
    files: list[Path] = []
    for root, dirs, names in os.walk(src_dir):
        dirs[:] = sorted(d for d in dirs if d not in EXCLUDED_NAMES)
        for name in sorted(names):
            if name in EXCLUDED_NAMES:
                continue
            files.append(Path(root) / name)
    return files


def zip_directory(src_dir: Path, dest_path: Path) -> FetchResult:
    """Build a zip archive from an installed package directory.

    Members are stored under a top-level folder named after the directory,
    which is the layout plugin and theme installers expect.

    Raises:
        IntegrityError: If the directory holds no files.
        FetchError: If the directory cannot be read or the zip written.
    """
    logger.info("Building archive of %s at %s", src_dir, dest_path)

    files = _iter_directory(src_dir)
    if not files:
        raise IntegrityError(
            f"Directory {src_dir} contains no files", code="empty_payload"
        )

    try:
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(dest_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for file_path in files:
                arcname = Path(src_dir.name) / file_path.relative_to(src_dir)
                zf.write(file_path, arcname.as_posix())
    except OSError as e:
        raise FetchError(
            f"Cannot archive directory {src_dir}: {e}",
            code="read_error",
        ) from e

    sha256 = hashlib.sha256()
    with dest_path.open("rb") as f:
        while chunk := f.read(FETCH_CHUNK_SIZE):
            sha256.update(chunk)

    return FetchResult(
        path=dest_path,
        size_bytes=dest_path.stat().st_size,
        sha256=sha256.hexdigest(),
    )


def fetch_to_file(
    source: str,
    dest_path: Path,
    client: httpx.Client | None = None,
    timeout: float = FETCH_TIMEOUT,
    chunk_size: int = FETCH_CHUNK_SIZE,
) -> FetchResult:
    """Obtain release bytes from a source location into dest_path.

    Args:
        source: HTTP(S) URL, file:// URL, or local file/directory path.
        dest_path: File to write the release bytes to.
        client: HTTPX client used for remote sources (created if missing).
        timeout: Timeout in seconds for remote sources.
        chunk_size: Size of chunks for streaming.

    Returns:
        FetchResult for the written file.

    Raises:
        FetchError: If the source is missing, unreadable, or unsupported.
    """
    if is_remote_source(source):
        if client is not None:
            return download_file(client, source, dest_path, timeout, chunk_size)
        with httpx.Client(follow_redirects=True) as own_client:
            return download_file(own_client, source, dest_path, timeout, chunk_size)

    src_path = local_source_path(source)
    if src_path.is_dir():
        return zip_directory(src_path, dest_path)
    if src_path.is_file():
        return copy_local_file(src_path, dest_path, chunk_size)

    raise FetchError(
        f"Release source not found: {src_path}",
        code="source_not_found",
    )


__all__ = [
    "FETCH_CHUNK_SIZE",
    "FETCH_TIMEOUT",
    "FetchResult",
    "copy_local_file",
    "download_file",
    "fetch_to_file",
    "is_remote_source",
    "local_source_path",
    "redact_url",
    "zip_directory",
]
