"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter

from release_vault.config import get_settings

router = APIRouter()


@router.get("")
def get_config() -> dict[str, Any]:
    """Get effective configuration.

    Returns:
        Current configuration as JSON.
    """
    settings = get_settings()
    return {
        "storage_dir": str(settings.storage_dir),
        "db_url": settings.db_url,
        "log_level": settings.log_level,
        "fetch_timeout": settings.fetch_timeout,
        "lock_timeout": settings.lock_timeout,
        "verify_tls": settings.verify_tls,
        "user_agent": settings.user_agent,
    }
