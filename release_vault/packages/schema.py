"""Pydantic models for package descriptors.

Package descriptors are imported from YAML/JSON files (the result of
scanning a host for installed plugins and themes) and validated here
before they reach the database.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from release_vault.releases.keys import SLUG_PATTERN
from release_vault.types import PackageType

class PackageSchema(BaseModel):
    """Schema for a package descriptor.

    Attributes:
        slug: Package slug (lower-case letters, digits, '.', '_', '-').
        type: Package type.
        name: Display name (defaults to the slug).
        installed_version: Installed version, if installed.
        installed_source: Local path of the installed package.
        latest_version: Latest known version.
        latest_source: Download URL or path for the latest version.
    """

    model_config = ConfigDict(extra="forbid")

    slug: str = Field(description="Package slug")
    type: PackageType = Field(default=PackageType.PLUGIN, description="Package type")
    name: str | None = Field(default=None, description="Display name")
    installed_version: str | None = Field(default=None)
    installed_source: str | None = Field(default=None)
    latest_version: str | None = Field(default=None)
    latest_source: str | None = Field(default=None)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        """Validate slug format."""
        v = v.strip().lower()
        if not SLUG_PATTERN.match(v):
            raise ValueError(
                f"slug must contain only a-z, 0-9, '.', '_' or '-', got '{v}'"
            )
        return v

    @model_validator(mode="after")
    def validate_release_pairs(self) -> "PackageSchema":
        """A version needs a source and vice versa."""
        if bool(self.installed_version) != bool(self.installed_source):
            raise ValueError(
                "installed_version and installed_source must be given together"
            )
        if bool(self.latest_version) != bool(self.latest_source):
            raise ValueError("latest_version and latest_source must be given together")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.slug


class PackageImportResult(BaseModel):
    """Result of importing one package descriptor."""

    slug: str
    type: str | None = None
    success: bool
    created: bool = False
    error: str | None = None

class PackageBulkImportResult(BaseModel):
    """Result of importing a file or directory of package descriptors."""

    total: int
    succeeded: int
    failed: int
    results: list[PackageImportResult] = Field(default_factory=list)

__all__ = [
    "PackageBulkImportResult",
    "PackageImportResult",
    "PackageSchema",
]
