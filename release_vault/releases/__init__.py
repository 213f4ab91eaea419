"""Release archiving module.

This module handles:
- Release and archived artifact value types
- Storage key derivation and the on-disk layout
- Fetching release bytes from URLs, files and directories
- The archive store and its per-key locking
- The release manager that archives each version exactly once
"""

from release_vault.releases.keys import StorageKey, derive_key
from release_vault.releases.manager import ReleaseManager
from release_vault.releases.models import ArchivedArtifact, ArchiveResult, Release
from release_vault.releases.store import ArchiveStore, PendingArtifact

__all__ = [
    "ArchiveResult",
    "ArchiveStore",
    "ArchivedArtifact",
    "PendingArtifact",
    "Release",
    "ReleaseManager",
    "StorageKey",
    "derive_key",
]
