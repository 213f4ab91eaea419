"""Database access for the package and whitelist tables.

The archive itself lives on the filesystem; the database only records
which packages exist, which releases they have, and which are whitelisted.
SQLite is the default backend and may be shared by the CLI and the HTTP
API at the same time, so SQLite connections use WAL journaling and wait
for locks instead of failing immediately.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from release_vault.config import get_settings

# Seconds a SQLite connection waits for a competing writer
SQLITE_BUSY_TIMEOUT = 30


class Base(DeclarativeBase):
    """Declarative base for release_vault tables."""


def _sqlite_file(db_url: str) -> Path | None:
    """Return the database file of a SQLite URL, or None for memory/other URLs."""
    if not db_url.startswith("sqlite:///"):
        return None
    path = db_url.removeprefix("sqlite:///")
    if not path or path == ":memory:":
        return None
    return Path(path)


def _enable_wal(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def get_engine(db_url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine.

    Args:
        db_url: Database URL; defaults to ``settings.db_url``.

    Returns:
        Engine. For a SQLite file the parent directory is created.
    """
    if db_url is None:
        db_url = get_settings().db_url

    connect_args: dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT

    db_file = _sqlite_file(db_url)
    if db_file is not None:
        db_file.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(db_url, connect_args=connect_args)
    if db_file is not None:
        event.listen(engine, "connect", _enable_wal)
    return engine


def get_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Create a session factory bound to engine (or a settings-derived one)."""
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Run a unit of work: commit on success, roll back on error.

    Args:
        session_factory: Factory to open the session with; one is built
            from settings if omitted.

    Yields:
        Session for the unit of work.
    """
    if session_factory is None:
        session_factory = get_session_factory()

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Engine | None = None) -> None:
    """Create any missing package and whitelist tables."""
    # Importing the models registers them on Base.metadata
    from release_vault.packages import models as packages_models  # noqa: F401

    if engine is None:
        engine = get_engine()
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
]
