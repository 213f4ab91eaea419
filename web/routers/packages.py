"""Package endpoints.

- GET /packages - List known packages
- GET /packages/{type}/{slug} - Get one package with its whitelist status
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from release_vault.packages.service import (
    PackageNotFoundError,
    list_packages,
    package_to_schema,
    resolve_package,
    whitelist_contains,
)
from release_vault.types import PackageType
from web.deps import get_db

router = APIRouter()


@router.get("")
def list_packages_endpoint(
    type: PackageType | None = Query(None, description="Filter by package type"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List known packages, optionally filtered by type."""
    return [
        package_to_schema(p).model_dump(mode="json", exclude_none=True)
        for p in list_packages(db, type)
    ]


@router.get("/{package_type}/{slug}")
def get_package_endpoint(
    package_type: PackageType,
    slug: str,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a package by type and slug.

    Raises:
        HTTPException: If the package is not found.
    """
    try:
        package = resolve_package(db, slug, package_type)
    except PackageNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": str(e)},
        ) from None

    data = package_to_schema(package).model_dump(mode="json", exclude_none=True)
    data["whitelisted"] = whitelist_contains(db, package.slug, package_type)
    return data
