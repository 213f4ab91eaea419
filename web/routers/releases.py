"""Archived release endpoints.

- GET /releases - List archived releases
- GET /releases/{type}/{slug} - List archived versions of a package
- GET /releases/{type}/{slug}/{version} - Get artifact metadata
- GET /releases/{type}/{slug}/{version}/download - Download artifact bytes
- POST /releases/archive - Archive a package or an explicit release
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from fastapi.responses import FileResponse
from pydantic import BaseModel, model_validator

from release_vault.errors import (
    ArchiveError,
    ArtifactNotFoundError,
    FetchError,
    ResolutionError,
)
from release_vault.releases.keys import derive_key
from release_vault.releases.manager import ReleaseManager
from release_vault.releases.models import Release
from release_vault.releases.store import ArchiveStore
from release_vault.triggers.coordinator import ArchiveCoordinator
from release_vault.types import PackageIdentity, PackageType
from web.deps import get_coordinator, get_manager, get_store

router = APIRouter()


class ArchiveRequest(BaseModel):
    """Request body for archiving.

    Without version/source the package's installed and latest releases
    are archived.
    """

    type: PackageType = PackageType.PLUGIN
    slug: str
    version: str | None = None
    source: str | None = None

    @model_validator(mode="after")
    def validate_release(self) -> "ArchiveRequest":
        if (self.version is None) != (self.source is None):
            raise ValueError("version and source must be given together")
        return self


def _error_status(error: ArchiveError) -> int:
    """Map an archive error to an HTTP status code."""
    if isinstance(error, ResolutionError):
        return http_status.HTTP_400_BAD_REQUEST
    if isinstance(error, ArtifactNotFoundError):
        return http_status.HTTP_404_NOT_FOUND
    if isinstance(error, FetchError):
        return http_status.HTTP_502_BAD_GATEWAY
    return http_status.HTTP_500_INTERNAL_SERVER_ERROR


def _http_error(error: ArchiveError) -> HTTPException:
    return HTTPException(
        status_code=_error_status(error),
        detail={"code": error.code, "message": str(error)},
    )


@router.get("")
def list_releases_endpoint(
    type: PackageType | None = Query(None, description="Filter by package type"),
    store: ArchiveStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """List every archived release."""
    return [
        a.to_dict() for a in store.list_all() if type is None or a.type == type
    ]


@router.get("/{package_type}/{slug}")
def list_versions_endpoint(
    package_type: PackageType,
    slug: str,
    store: ArchiveStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """List archived versions of a package, oldest first."""
    try:
        return [a.to_dict() for a in store.list_versions(package_type, slug)]
    except ArchiveError as e:
        raise _http_error(e) from None


@router.get("/{package_type}/{slug}/{version}")
def get_release_endpoint(
    package_type: PackageType,
    slug: str,
    version: str,
    verify: bool = Query(False, description="Re-check stored bytes"),
    store: ArchiveStore = Depends(get_store),
) -> dict[str, Any]:
    """Get metadata of an archived release.

    Raises:
        HTTPException: If the release is not archived.
    """
    try:
        key = derive_key(PackageIdentity(slug=slug, type=package_type), version)
        data = store.stat(key).to_dict()
        if verify:
            data["verified"] = store.verify(key)
    except ArchiveError as e:
        raise _http_error(e) from None
    return data


@router.get("/{package_type}/{slug}/{version}/download")
def download_release_endpoint(
    package_type: PackageType,
    slug: str,
    version: str,
    store: ArchiveStore = Depends(get_store),
) -> FileResponse:
    """Download the bytes of an archived release."""
    try:
        key = derive_key(PackageIdentity(slug=slug, type=package_type), version)
        artifact = store.stat(key)
    except ArchiveError as e:
        raise _http_error(e) from None

    path = store.artifact_file(key)
    if not path.is_file():
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "code": "artifact_not_found",
                "message": f"Artifact file missing for {key}",
            },
        )

    return FileResponse(
        path,
        media_type="application/zip",
        filename=path.name,
        headers={"X-Checksum-SHA256": artifact.sha256},
    )


@router.post("/archive")
def archive_endpoint(
    request: ArchiveRequest,
    manager: ReleaseManager = Depends(get_manager),
    coordinator: ArchiveCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Archive a release.

    With version and source the given release is archived directly and a
    failure is reported as an HTTP error. Otherwise the package's releases
    are archived as a batch and the per-item report is returned.
    """
    if request.version is None or request.source is None:
        return coordinator.archive_package(request.type, request.slug).to_dict()

    try:
        release = Release(
            package=PackageIdentity(slug=request.slug, type=request.type),
            version=request.version,
            source=request.source,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_release", "message": str(e)},
        ) from None

    result = manager.archive(release)
    if not result.success:
        if isinstance(result.error, ArchiveError):
            raise _http_error(result.error)
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": result.code, "message": result.message},
        )

    return {
        "cached": result.cached,
        "artifact": result.artifact.to_dict() if result.artifact else None,
    }
