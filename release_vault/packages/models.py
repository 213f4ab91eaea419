"""Package and whitelist ORM models.

Packages describe the plugins and themes known to the host: their
installed release (a local path) and the latest release reported by
update checks (usually a URL). Whitelist entries mark which of them are
eligible for archiving.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from release_vault.db import Base
from release_vault.types import PackageType


class Package(Base):
    """ORM model for a known plugin or theme.

    Attributes:
        id: Primary key.
        slug: Package slug (unique per type).
        type: Package type ('plugin' or 'theme').
        name: Display name.
        installed_version: Currently installed version, if installed.
        installed_source: Local path of the installed package.
        latest_version: Latest version reported by update checks.
        latest_source: Download URL (or path) of the latest version.
        created_at: Timestamp of creation.
        updated_at: Timestamp of last update.
    """

    __tablename__ = "packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PackageType.PLUGIN.value
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    installed_version: Mapped[str | None] = mapped_column(String(128), nullable=True)
    installed_source: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    latest_version: Mapped[str | None] = mapped_column(String(128), nullable=True)
    latest_source: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("ix_packages_type_slug", "type", "slug", unique=True),)

    def __repr__(self) -> str:
        """Return string representation of Package."""
        return (
            f"<Package(id={self.id}, type='{self.type}', slug='{self.slug}', "
            f"installed='{self.installed_version}', latest='{self.latest_version}')>"
        )

    def is_installed(self) -> bool:
        """Check if the package has an installed release."""
        return bool(self.installed_version and self.installed_source)


class WhitelistEntry(Base):
    """ORM model for a whitelisted package.

    Attributes:
        id: Primary key.
        slug: Package slug.
        type: Package type.
        added_at: Timestamp the package was whitelisted.
    """

    __tablename__ = "whitelist_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_whitelist_entries_type_slug", "type", "slug", unique=True),
    )

    def __repr__(self) -> str:
        """Return string representation of WhitelistEntry."""
        return f"<WhitelistEntry(type='{self.type}', slug='{self.slug}')>"


__all__ = ["Package", "WhitelistEntry"]
