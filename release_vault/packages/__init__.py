"""Package and whitelist repositories.

This module handles:
- Package descriptors (installed and latest releases) in the database
- YAML/JSON import of package descriptors
- Whitelist membership with before/after change snapshots
"""

from release_vault.packages.models import Package, WhitelistEntry

__all__ = ["Package", "WhitelistEntry"]

# Lazy imports for submodules to avoid circular imports
# Access via release_vault.packages.service, etc.
