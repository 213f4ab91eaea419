"""Tests for the CLI.

Each test points the CLI at a fresh database and store under tmp_path
through RELEASE_VAULT_* environment variables.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
import respx
from typer.testing import CliRunner

from release_vault import __version__
from release_vault.cli import app

runner = CliRunner()


@pytest.fixture
def vault_env(tmp_path: Path):
    """Point settings at a temporary database and store."""
    env = {
        "RELEASE_VAULT_DB_URL": f"sqlite:///{tmp_path / 'vault.db'}",
        "RELEASE_VAULT_STORAGE_DIR": str(tmp_path / "store"),
        "RELEASE_VAULT_LOG_LEVEL": "CRITICAL",
        "RELEASE_VAULT_LOCK_TIMEOUT": "10",
    }
    with patch.dict(os.environ, env):
        yield tmp_path


@pytest.fixture
def installed_plugin(vault_env: Path) -> Path:
    """An installed plugin directory registered with the vault."""
    plugin_dir = vault_env / "wp-content" / "plugins" / "demo-plugin"
    plugin_dir.mkdir(parents=True)
    (plugin_dir / "demo-plugin.php").write_text("<?php /* Plugin Name: Demo */")

    descriptors = vault_env / "packages.yaml"
    descriptors.write_text(
        "packages:\n"
        "  - slug: demo-plugin\n"
        "    type: plugin\n"
        "    name: Demo Plugin\n"
        "    installed_version: 1.1.0\n"
        f"    installed_source: {plugin_dir}\n"
        "  - slug: idle-theme\n"
        "    type: theme\n"
    )
    result = runner.invoke(app, ["packages", "import", str(descriptors)])
    assert result.exit_code == 0, result.output
    return plugin_dir


def invoke_json(args: list[str]):
    result = runner.invoke(app, [*args, "--json"])
    return result, json.loads(result.stdout)


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Release Vault" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command(self, vault_env: Path) -> None:
        """CLI config should show configuration."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Storage directory" in result.stdout
        assert "Lock timeout" in result.stdout

    def test_config_json(self, vault_env: Path) -> None:
        """CLI config --json should output the effective settings."""
        result, data = invoke_json(["config"])
        assert result.exit_code == 0
        assert data["storage_dir"] == str(vault_env / "store")
        assert data["lock_timeout"] == 10.0


class TestCLIPackages:
    """Test packages commands."""

    def test_list_empty(self, vault_env: Path) -> None:
        """An empty database lists no packages."""
        result, data = invoke_json(["packages", "list"])
        assert result.exit_code == 0
        assert data == []

    def test_import_and_list(self, installed_plugin: Path) -> None:
        """Imported descriptors should be listed."""
        result, data = invoke_json(["packages", "list", "--type", "plugin"])
        assert result.exit_code == 0
        assert [p["slug"] for p in data] == ["demo-plugin"]
        assert data[0]["installed_version"] == "1.1.0"

    def test_show(self, installed_plugin: Path) -> None:
        """packages show should print one package."""
        result, data = invoke_json(["packages", "show", "theme", "idle-theme"])
        assert result.exit_code == 0
        assert data["type"] == "theme"

    def test_show_not_found(self, vault_env: Path) -> None:
        """Unknown packages should exit with code 1."""
        result = runner.invoke(app, ["packages", "show", "plugin", "ghost"])
        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_import_missing_file(self, vault_env: Path) -> None:
        """Importing a missing file should fail."""
        result = runner.invoke(app, ["packages", "import", str(vault_env / "nope.yaml")])
        assert result.exit_code == 1

    def test_export(self, installed_plugin: Path, vault_env: Path) -> None:
        """Exported descriptors should be written to the file."""
        out = vault_env / "export.json"
        result = runner.invoke(app, ["packages", "export", str(out)])
        assert result.exit_code == 0
        data = json.loads(out.read_text())
        assert {p["slug"] for p in data["packages"]} == {"demo-plugin", "idle-theme"}


class TestCLIWhitelist:
    """Test whitelist commands."""

    def test_add_archives_installed_release(self, installed_plugin: Path) -> None:
        """Whitelisting an installed plugin should archive it."""
        result, report = invoke_json(["whitelist", "add", "plugin", "demo-plugin"])

        assert result.exit_code == 0
        assert report["archived"] == 1
        assert report["items"][0]["version"] == "1.1.0"
        assert report["items"][0]["status"] == "archived"

        result, slugs = invoke_json(["whitelist", "list", "plugin"])
        assert slugs == ["demo-plugin"]

    def test_add_again_archives_nothing(self, installed_plugin: Path) -> None:
        """Re-adding a whitelisted slug is not a new addition."""
        runner.invoke(app, ["whitelist", "add", "plugin", "demo-plugin"])
        result, report = invoke_json(["whitelist", "add", "plugin", "demo-plugin"])

        assert result.exit_code == 0
        assert report["items"] == []

    def test_add_not_installed_skipped(self, installed_plugin: Path) -> None:
        """Packages that are not installed are skipped, not failed."""
        result, report = invoke_json(["whitelist", "add", "theme", "idle-theme"])
        assert result.exit_code == 0
        assert report["skipped"] == 1

    def test_add_no_archive(self, installed_plugin: Path) -> None:
        """--no-archive should only update the whitelist."""
        result, data = invoke_json(
            ["whitelist", "add", "plugin", "demo-plugin", "--no-archive"]
        )
        assert result.exit_code == 0
        assert data == {"added": ["demo-plugin"]}

        result, releases = invoke_json(["releases", "list"])
        assert releases == []

    def test_remove(self, installed_plugin: Path) -> None:
        """Removing should keep archived releases."""
        runner.invoke(app, ["whitelist", "add", "plugin", "demo-plugin"])
        result = runner.invoke(app, ["whitelist", "remove", "plugin", "demo-plugin"])
        assert result.exit_code == 0

        _, slugs = invoke_json(["whitelist", "list", "plugin"])
        assert slugs == []
        _, releases = invoke_json(["releases", "list"])
        assert len(releases) == 1


class TestCLIArchive:
    """Test archive and releases commands."""

    def test_archive_explicit_release(self, vault_env: Path) -> None:
        """An explicit version and source should be archived, then cached."""
        source = vault_env / "demo-plugin.1.2.0.zip"
        source.write_bytes(b"z" * 10240)
        args = [
            "archive",
            "plugin",
            "demo-plugin",
            "--version",
            "1.2.0",
            "--source",
            str(source),
        ]

        result, first = invoke_json(args)
        assert result.exit_code == 0
        assert first["success"] is True
        assert first["cached"] is False
        assert first["artifact"]["size_bytes"] == 10240

        result, second = invoke_json(args)
        assert second["cached"] is True
        assert second["artifact"]["sha256"] == first["artifact"]["sha256"]

    def test_archive_requires_version_and_source(self, vault_env: Path) -> None:
        """--version without --source is an error."""
        result = runner.invoke(
            app, ["archive", "plugin", "demo-plugin", "--version", "1.0"]
        )
        assert result.exit_code == 1

    def test_archive_missing_source_fails(self, vault_env: Path) -> None:
        """A missing source should exit with code 1."""
        result = runner.invoke(
            app,
            [
                "archive",
                "plugin",
                "demo-plugin",
                "--version",
                "1.0",
                "--source",
                str(vault_env / "missing.zip"),
            ],
        )
        assert result.exit_code == 1

    def test_archive_recorded_package(self, installed_plugin: Path) -> None:
        """Without a version the recorded releases are archived."""
        result, report = invoke_json(["archive", "plugin", "demo-plugin"])
        assert result.exit_code == 0
        assert report["archived"] == 1

    def test_archive_unknown_package(self, vault_env: Path) -> None:
        """Unknown packages should exit with code 1."""
        result = runner.invoke(app, ["archive", "plugin", "ghost"])
        assert result.exit_code == 1

    def test_releases_list_and_show(self, installed_plugin: Path) -> None:
        """Archived releases should be listed, shown and verified."""
        runner.invoke(app, ["archive", "plugin", "demo-plugin"])

        result, releases = invoke_json(["releases", "list", "plugin", "demo-plugin"])
        assert result.exit_code == 0
        assert [r["version"] for r in releases] == ["1.1.0"]

        result, shown = invoke_json(
            ["releases", "show", "plugin", "demo-plugin", "1.1.0", "--verify"]
        )
        assert result.exit_code == 0
        assert shown["verified"] is True
        assert shown["path"] == "plugin/demo-plugin/demo-plugin-1.1.0.zip"

    def test_releases_show_missing(self, vault_env: Path) -> None:
        """Showing an unarchived release should fail."""
        result = runner.invoke(app, ["releases", "show", "plugin", "demo", "9.9"])
        assert result.exit_code == 1

    def test_store_info(self, installed_plugin: Path) -> None:
        """store info should count archived releases."""
        runner.invoke(app, ["archive", "plugin", "demo-plugin"])
        result, info = invoke_json(["store", "info"])
        assert result.exit_code == 0
        assert info["artifact_count"] == 1
        assert info["package_count"] == 1


class TestCLIUpdates:
    """Test updates apply and upgrade commands."""

    @respx.mock(assert_all_called=False)
    def test_apply_archives_whitelisted_updates(self, installed_plugin: Path, respx_mock) -> None:
        """Only whitelisted packages in the payload should be archived."""
        demo_url = "https://downloads.example.com/demo-plugin.1.2.0.zip"
        other_url = "https://downloads.example.com/other.2.0.zip"
        demo_route = respx_mock.get(demo_url).mock(
            return_value=httpx.Response(200, content=b"d" * 4096)
        )
        other_route = respx_mock.get(other_url).mock(
            return_value=httpx.Response(200, content=b"o" * 4096)
        )
        runner.invoke(app, ["whitelist", "add", "plugin", "demo-plugin", "--no-archive"])

        payload = installed_plugin.parent / "updates.json"
        payload.write_text(
            json.dumps(
                {
                    "response": {
                        "demo-plugin/demo-plugin.php": {
                            "slug": "demo-plugin",
                            "new_version": "1.2.0",
                            "package": demo_url,
                        },
                        "other/other.php": {
                            "slug": "other",
                            "new_version": "2.0",
                            "package": other_url,
                        },
                    }
                }
            )
        )

        result, report = invoke_json(["updates", "apply", "plugin", str(payload)])

        assert result.exit_code == 0
        assert report["archived"] == 1
        assert demo_route.call_count == 1
        assert other_route.call_count == 0

        _, package = invoke_json(["packages", "show", "plugin", "demo-plugin"])
        assert package["latest_version"] == "1.2.0"

    def test_apply_unreadable_payload(self, vault_env: Path) -> None:
        """A payload that is not JSON should fail."""
        payload = vault_env / "updates.json"
        payload.write_text("{nope")
        result = runner.invoke(app, ["updates", "apply", "plugin", str(payload)])
        assert result.exit_code == 1

    def test_upgrade_archives_whitelisted(self, installed_plugin: Path) -> None:
        """An upgrade of a whitelisted plugin archives the new version."""
        runner.invoke(app, ["whitelist", "add", "plugin", "demo-plugin", "--no-archive"])

        result, report = invoke_json(
            ["upgrade", "plugin", "demo-plugin", "1.3.0", str(installed_plugin)]
        )

        assert result.exit_code == 0
        assert [i["version"] for i in report["items"]] == ["1.3.0"]

    def test_upgrade_unknown_package(self, vault_env: Path, tmp_path: Path) -> None:
        """Upgrading an unknown package should fail."""
        result = runner.invoke(app, ["upgrade", "plugin", "ghost", "1.0", str(tmp_path)])
        assert result.exit_code == 1
