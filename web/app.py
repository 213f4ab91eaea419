"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. Routes are thin proxies to core APIs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from release_vault import __version__
from release_vault.config import get_settings
from release_vault.db import create_all_tables, get_engine, get_session_factory
from release_vault.releases.manager import ReleaseManager
from web.routers import config, health, packages, releases


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Initializes database tables and the release manager on startup and
    closes the manager's HTTP client on shutdown.
    """
    engine = get_engine()
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)
    app.state.manager = ReleaseManager.from_settings(get_settings())
    try:
        yield
    finally:
        app.state.manager.close()
        engine.dispose()


def include_routers(application: FastAPI) -> None:
    """Attach all API routers to an application."""
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(packages.router, prefix="/packages", tags=["packages"])
    application.include_router(releases.router, prefix="/releases", tags=["releases"])


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Release Vault API",
        description="HTTP API for browsing and downloading archived "
        "plugin and theme releases",
        version=__version__,
        lifespan=lifespan,
    )
    include_routers(application)
    return application


# Create the default application instance
app = create_app()
