"""Release Vault - private package repository archiving.

This package mirrors whitelisted plugins and themes into a version-addressed
archive store so that a dependency manager can later fetch fixed,
checksummed releases.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
