"""FastAPI web application for Release Vault.

This module provides the HTTP API over the archive store and the
package repository. All business logic is delegated to release_vault.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
