"""Router modules for FastAPI web API."""

from web.routers import config, health, packages, releases

__all__ = ["config", "health", "packages", "releases"]
