"""Configuration settings for release_vault.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_storage_dir() -> Path:
    """Return the default archive storage directory."""
    return Path.home() / ".local" / "share" / "release-vault" / "packages"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "release-vault" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the RELEASE_VAULT_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELEASE_VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    storage_dir: Path = Field(
        default_factory=_default_storage_dir,
        description="Root directory of the archive store",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Fetching
    fetch_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Timeout in seconds for obtaining release bytes",
    )
    lock_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Timeout in seconds for acquiring a per-release archive lock",
    )
    verify_tls: bool = Field(
        default=True,
        description="Verify TLS certificates when downloading releases",
    )
    user_agent: str = Field(
        default="release-vault",
        description="User-Agent header sent with release downloads",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
