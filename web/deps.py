"""Shared dependencies for FastAPI routes.

Provides a database session, the release manager and an archive
coordinator to route handlers via FastAPI dependency injection.

Transaction boundaries for the session are managed here:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from release_vault.packages.service import PackageRepository, WhitelistRepository
from release_vault.releases.manager import ReleaseManager
from release_vault.releases.store import ArchiveStore
from release_vault.triggers.coordinator import ArchiveCoordinator


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state."""
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Yields:
        Database session.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_manager(request: Request) -> ReleaseManager:
    """Get the shared release manager from app state."""
    manager: Any = request.app.state.manager
    return manager  # type: ignore[no-any-return]


def get_store(manager: ReleaseManager = Depends(get_manager)) -> ArchiveStore:
    """Get the archive store behind the release manager."""
    return manager.store


def get_coordinator(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    manager: ReleaseManager = Depends(get_manager),
) -> ArchiveCoordinator:
    """Build an archive coordinator over the app's repositories."""
    return ArchiveCoordinator(
        packages=PackageRepository(session_factory),
        whitelist=WhitelistRepository(session_factory),
        manager=manager,
    )
