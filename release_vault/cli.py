"""Thin CLI wrapper for release_vault.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from release_vault import __version__
from release_vault.config import get_settings, print_settings_json
from release_vault.types import PackageType

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from release_vault.releases.manager import ReleaseManager
    from release_vault.releases.models import ArchivedArtifact
    from release_vault.triggers.coordinator import ArchiveCoordinator, BatchReport

app = typer.Typer(
    name="vault",
    help="Release Vault - archive whitelisted plugin and theme releases",
    no_args_is_help=True,
)
console = Console()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"release-vault version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Release Vault - archive whitelisted plugin and theme releases."""
    configure_logging(get_settings().log_level)


def _print_json(data: Any) -> None:
    """Print JSON without rich markup, highlighting or wrapping."""
    console.print(
        json.dumps(data, indent=2),
        markup=False,
        highlight=False,
        emoji=False,
        soft_wrap=True,
    )


def _session_factory() -> sessionmaker[Session]:
    from release_vault.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    return get_session_factory(engine)


def _services(
    factory: sessionmaker[Session],
) -> tuple[ReleaseManager, ArchiveCoordinator]:
    """Build the release manager and coordinator from settings."""
    from release_vault.packages.service import PackageRepository, WhitelistRepository
    from release_vault.releases.manager import ReleaseManager
    from release_vault.triggers.coordinator import ArchiveCoordinator

    manager = ReleaseManager.from_settings(get_settings())
    coordinator = ArchiveCoordinator(
        packages=PackageRepository(factory),
        whitelist=WhitelistRepository(factory),
        manager=manager,
    )
    return manager, coordinator


def _artifact_dict(artifact: ArchivedArtifact) -> dict[str, Any]:
    return artifact.to_dict()


def _print_report(report: BatchReport, json_output: bool) -> None:
    """Print a batch report and exit non-zero if anything failed."""
    if json_output:
        _print_json(report.to_dict())
    else:
        if not report.items:
            console.print("[yellow]Nothing to archive[/yellow]")
        for item in report.items:
            label = f"{item.package}" + (f" {item.version}" if item.version else "")
            if item.status.value == "archived":
                console.print(f"[green]✓ Archived {label}[/green]")
            elif item.status.value == "cached":
                console.print(f"[green]✓ Already archived {label}[/green]")
            elif item.status.value == "skipped":
                console.print(f"[dim]- Skipped {label}: {item.message}[/dim]")
            else:
                console.print(f"[red]✗ Failed {label}: {item.message}[/red]")
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        _print_json(json.loads(print_settings_json(settings)))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Storage directory:   {settings.storage_dir}")
        console.print(f"  Database URL:        {settings.db_url}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Verify TLS:          {settings.verify_tls}")
        console.print(f"  User agent:          {settings.user_agent}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Fetch timeout:       {settings.fetch_timeout}")
        console.print(f"  Lock timeout:        {settings.lock_timeout}")


packages_app = typer.Typer(help="Manage known packages")
app.add_typer(packages_app, name="packages")


@packages_app.command("list")
def packages_list(
    package_type: Annotated[
        PackageType | None,
        typer.Option("--type", "-t", help="Filter by package type"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List known packages."""
    from release_vault.packages.service import list_packages, package_to_schema

    factory = _session_factory()
    with factory() as session:
        packages = list_packages(session, package_type)

        if json_output:
            _print_json(
                [
                    package_to_schema(p).model_dump(mode="json", exclude_none=True)
                    for p in packages
                ]
            )
            return

        if not packages:
            console.print("[yellow]No packages found[/yellow]")
            return

        console.print(f"[bold]Found {len(packages)} package(s):[/bold]")
        console.print()
        for p in packages:
            console.print(f"  [green]{p.type}/{p.slug}[/green]")
            console.print(f"    Name: {p.name}")
            console.print(f"    Installed: {p.installed_version or '-'}")
            console.print(f"    Latest: {p.latest_version or '-'}")
            console.print()


@packages_app.command("show")
def packages_show(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    slug: Annotated[str, typer.Argument(help="Package slug")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show details of a package."""
    from release_vault.packages.service import (
        PackageNotFoundError,
        package_to_schema,
        resolve_package,
    )

    factory = _session_factory()
    with factory() as session:
        try:
            package = resolve_package(session, slug, package_type)
        except PackageNotFoundError:
            console.print(f"[red]Package not found: {package_type.value}/{slug}[/red]")
            raise typer.Exit(code=1) from None

        data = package_to_schema(package).model_dump(mode="json", exclude_none=True)
        if json_output:
            _print_json(data)
        else:
            console.print(f"[bold]{package.name}[/bold] ({package.type}/{package.slug})")
            for key, value in data.items():
                console.print(f"  {key}: {value}")


@packages_app.command("import")
def packages_import(
    path: Annotated[Path, typer.Argument(help="Descriptor file (YAML or JSON)")],
    no_update: Annotated[
        bool,
        typer.Option("--no-update", help="Fail on packages that already exist"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Import package descriptors from a file."""
    from release_vault.db import get_session
    from release_vault.packages.service import import_packages_from_file

    if not path.is_file():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1)

    factory = _session_factory()
    with get_session(factory) as session:
        result = import_packages_from_file(
            session, path, update_existing=not no_update
        )

    if json_output:
        _print_json(result.model_dump())
    else:
        for r in result.results:
            if r.success:
                action = "Created" if r.created else "Updated"
                console.print(f"[green]✓ {action} {r.type}/{r.slug}[/green]")
            else:
                console.print(f"[red]✗ {r.slug}: {r.error}[/red]")
        console.print(
            f"Imported {result.succeeded}/{result.total} package(s), "
            f"{result.failed} failed"
        )

    if result.failed:
        raise typer.Exit(code=1)


@packages_app.command("export")
def packages_export(
    path: Annotated[Path, typer.Argument(help="Output file (YAML or JSON)")],
    package_type: Annotated[
        PackageType | None,
        typer.Option("--type", "-t", help="Filter by package type"),
    ] = None,
) -> None:
    """Export package descriptors to a file."""
    from release_vault.packages.io import export_packages
    from release_vault.packages.service import list_packages, package_to_schema

    factory = _session_factory()
    with factory() as session:
        schemas = [package_to_schema(p) for p in list_packages(session, package_type)]

    try:
        export_packages(schemas, path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Export failed: {e}[/red]")
        raise typer.Exit(code=1) from None
    console.print(f"[green]✓ Exported {len(schemas)} package(s) to {path}[/green]")


whitelist_app = typer.Typer(help="Manage the package whitelist")
app.add_typer(whitelist_app, name="whitelist")


@whitelist_app.command("list")
def whitelist_list(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List whitelisted packages."""
    from release_vault.packages.service import WhitelistRepository

    slugs = WhitelistRepository(_session_factory()).slugs(package_type)
    if json_output:
        _print_json(slugs)
    elif not slugs:
        console.print("[yellow]Whitelist is empty[/yellow]")
    else:
        for slug in slugs:
            console.print(f"  {package_type.value}/{slug}")


@whitelist_app.command("add")
def whitelist_add(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    slugs: Annotated[list[str], typer.Argument(help="Package slugs to whitelist")],
    no_archive: Annotated[
        bool,
        typer.Option("--no-archive", help="Do not archive newly whitelisted packages"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Whitelist packages and archive the newcomers."""
    from release_vault.packages.service import WhitelistRepository

    factory = _session_factory()
    change = WhitelistRepository(factory).add(package_type, slugs)

    if no_archive:
        if json_output:
            _print_json({"added": list(change.added)})
        else:
            for slug in change.added:
                console.print(f"[green]✓ Whitelisted {package_type.value}/{slug}[/green]")
        return

    manager, coordinator = _services(factory)
    with manager:
        report = coordinator.handle(change)
    _print_report(report, json_output)


@whitelist_app.command("remove")
def whitelist_remove(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    slugs: Annotated[list[str], typer.Argument(help="Package slugs to remove")],
) -> None:
    """Remove packages from the whitelist (archived releases are kept)."""
    from release_vault.packages.service import WhitelistRepository

    change = WhitelistRepository(_session_factory()).remove(package_type, slugs)
    if not change.removed:
        console.print("[yellow]Nothing removed[/yellow]")
    for slug in change.removed:
        console.print(f"[green]✓ Removed {package_type.value}/{slug}[/green]")


@app.command()
def archive(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    slug: Annotated[str, typer.Argument(help="Package slug")],
    version: Annotated[
        str | None,
        typer.Option("--version", "-v", help="Version to archive (needs --source)"),
    ] = None,
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="URL or local path of the release"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Archive a package.

    Without --version/--source the installed and latest releases recorded
    for the package are archived.
    """
    from release_vault.releases.models import Release
    from release_vault.types import PackageIdentity

    if (version is None) != (source is None):
        console.print("[red]--version and --source must be given together[/red]")
        raise typer.Exit(code=1)

    factory = _session_factory()
    manager, coordinator = _services(factory)
    with manager:
        if version is None or source is None:
            report = coordinator.archive_package(package_type, slug)
            _print_report(report, json_output)
            return

        release = Release(
            package=PackageIdentity(slug=slug, type=package_type),
            version=version,
            source=source,
        )
        result = manager.archive(release)

    if json_output:
        _print_json(
            {
                "success": result.success,
                "cached": result.cached,
                "code": result.code,
                "message": result.message,
                "artifact": _artifact_dict(result.artifact)
                if result.artifact
                else None,
            }
        )
    elif result.success and result.artifact is not None:
        verb = "Already archived" if result.cached else "Archived"
        console.print(f"[green]✓ {verb} {release}[/green]")
        console.print(f"  Path: {result.artifact.path}")
        console.print(f"  Size: {result.artifact.size_bytes} bytes")
        console.print(f"  SHA-256: {result.artifact.sha256}")
    else:
        console.print(f"[red]✗ Failed to archive {release}: {result.message}[/red]")

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def upgrade(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    slug: Annotated[str, typer.Argument(help="Package slug")],
    version: Annotated[str, typer.Argument(help="Newly installed version")],
    source: Annotated[str, typer.Argument(help="Local path of the installed package")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Record an upgrade and archive the package if it is whitelisted."""
    from release_vault.db import get_session
    from release_vault.packages.service import PackageNotFoundError, record_install
    from release_vault.triggers.events import UpgradeCompleted

    factory = _session_factory()
    try:
        with get_session(factory) as session:
            record_install(session, slug, package_type, version, source)
    except PackageNotFoundError:
        console.print(f"[red]Package not found: {package_type.value}/{slug}[/red]")
        raise typer.Exit(code=1) from None

    manager, coordinator = _services(factory)
    with manager:
        report = coordinator.handle(UpgradeCompleted(type=package_type, slug=slug))
    _print_report(report, json_output)


updates_app = typer.Typer(help="Process update-check results")
app.add_typer(updates_app, name="updates")


@updates_app.command("apply")
def updates_apply(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    payload_path: Annotated[Path, typer.Argument(help="Update payload (JSON)")],
    no_record: Annotated[
        bool,
        typer.Option("--no-record", help="Do not record offers as latest versions"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Archive whitelisted updates listed in an update-check payload."""
    from release_vault.db import get_session
    from release_vault.packages.service import get_package_or_none, record_latest
    from release_vault.triggers.events import UpdatesAvailable, parse_update_payload

    try:
        payload = json.loads(payload_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read update payload: {e}[/red]")
        raise typer.Exit(code=1) from None

    offers = parse_update_payload(payload, package_type)

    factory = _session_factory()
    if not no_record:
        with get_session(factory) as session:
            for offer in offers:
                if get_package_or_none(session, offer.slug, offer.type) is not None:
                    record_latest(
                        session,
                        offer.slug,
                        offer.type,
                        offer.new_version,
                        offer.package_url,
                    )

    manager, coordinator = _services(factory)
    with manager:
        report = coordinator.handle(
            UpdatesAvailable(type=package_type, offers=tuple(offers))
        )
    _print_report(report, json_output)


releases_app = typer.Typer(help="Inspect archived releases")
app.add_typer(releases_app, name="releases")


@releases_app.command("list")
def releases_list(
    package_type: Annotated[
        PackageType | None,
        typer.Argument(help="Package type"),
    ] = None,
    slug: Annotated[str | None, typer.Argument(help="Package slug")] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List archived releases."""
    from release_vault.errors import ResolutionError
    from release_vault.releases.store import ArchiveStore

    store = ArchiveStore(get_settings().storage_dir)
    try:
        if package_type is not None and slug is not None:
            artifacts = store.list_versions(package_type, slug)
        else:
            artifacts = [
                a
                for a in store.list_all()
                if package_type is None or a.type == package_type
            ]
    except ResolutionError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        _print_json([_artifact_dict(a) for a in artifacts])
        return

    if not artifacts:
        console.print("[yellow]No archived releases found[/yellow]")
        return

    console.print(f"[bold]Found {len(artifacts)} archived release(s):[/bold]")
    for a in artifacts:
        console.print(
            f"  [green]{a.type.value}/{a.slug} {a.version}[/green] "
            f"({a.size_bytes} bytes, sha256 {a.sha256[:16]}...)"
        )


@releases_app.command("show")
def releases_show(
    package_type: Annotated[PackageType, typer.Argument(help="Package type")],
    slug: Annotated[str, typer.Argument(help="Package slug")],
    version: Annotated[str, typer.Argument(help="Version")],
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Re-check stored bytes against metadata"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show an archived release."""
    from release_vault.errors import ArchiveError
    from release_vault.releases.keys import derive_key
    from release_vault.releases.store import ArchiveStore
    from release_vault.types import PackageIdentity

    store = ArchiveStore(get_settings().storage_dir)
    try:
        key = derive_key(PackageIdentity(slug=slug, type=package_type), version)
        artifact = store.stat(key)
        verified = store.verify(key) if verify else None
    except ArchiveError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    data = _artifact_dict(artifact)
    if verified is not None:
        data["verified"] = verified

    if json_output:
        _print_json(data)
    else:
        for field_name, value in data.items():
            console.print(f"  {field_name}: {value}")

    if verified is False:
        raise typer.Exit(code=1)


store_app = typer.Typer(help="Inspect the archive store")
app.add_typer(store_app, name="store")


@store_app.command("info")
def store_info(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show archive store information."""
    from release_vault.releases.store import ArchiveStore

    info = ArchiveStore(get_settings().storage_dir).info()
    if json_output:
        _print_json(info)
    else:
        console.print("[bold]Archive Store:[/bold]")
        console.print(f"  Root:          {info['root']}")
        console.print(f"  Packages:      {info['package_count']}")
        console.print(f"  Artifacts:     {info['artifact_count']}")
        console.print(f"  Total size:    {info['total_size_bytes']} bytes")


if __name__ == "__main__":
    app()
