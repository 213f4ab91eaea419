"""Archiving triggers.

This module handles:
- Lifecycle events (whitelist changes, update checks, upgrades)
- Parsing raw update-check payloads into typed offers
- Coordinating archive requests with per-package error isolation
"""

from release_vault.triggers.events import (
    ArchiveEvent,
    UpdateOffer,
    UpdatesAvailable,
    UpgradeCompleted,
    WhitelistAdded,
    WhitelistChanged,
    parse_update_payload,
)

__all__ = [
    "ArchiveEvent",
    "UpdateOffer",
    "UpdatesAvailable",
    "UpgradeCompleted",
    "WhitelistAdded",
    "WhitelistChanged",
    "parse_update_payload",
]

# The coordinator is imported from release_vault.triggers.coordinator to keep
# this package importable from release_vault.packages without a cycle.
