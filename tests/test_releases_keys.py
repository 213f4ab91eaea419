"""Tests for storage key derivation."""

from pathlib import PurePosixPath

import pytest

from release_vault.errors import ResolutionError
from release_vault.releases.keys import (
    MAX_BASENAME_LENGTH,
    MAX_FILENAME_BYTES,
    MAX_VERSION_LENGTH,
    StorageKey,
    decode_version,
    derive_key,
    encode_version,
    normalize_slug,
    parse_artifact_filename,
    validate_version,
)
from release_vault.types import PackageIdentity, PackageType


def _plugin(slug: str) -> PackageIdentity:
    return PackageIdentity(slug=slug, type=PackageType.PLUGIN)


class TestNormalizeSlug:
    """Tests for normalize_slug function."""

    def test_lowercases(self):
        """Slugs are case-insensitive."""
        assert normalize_slug("  Demo-Plugin ") == "demo-plugin"

    @pytest.mark.parametrize("slug", ["", "../etc", "a/b", "-lead", "sp ace", "x" * 201])
    def test_rejects_unusable(self, slug):
        """Slugs that cannot name a directory should be rejected."""
        with pytest.raises(ResolutionError) as exc_info:
            normalize_slug(slug)
        assert exc_info.value.code == "invalid_slug"


class TestValidateVersion:
    """Tests for validate_version function."""

    def test_accepts_opaque_versions(self):
        """Versions are not parsed, only checked."""
        assert validate_version("1.2.0-beta+build.5") == "1.2.0-beta+build.5"
        assert validate_version("trunk/r123") == "trunk/r123"

    @pytest.mark.parametrize(
        "version", ["", "   ", "1.0\n", "1.0\x00", "1" * (MAX_VERSION_LENGTH + 1)]
    )
    def test_rejects_invalid(self, version):
        """Empty, overlong and control-character versions are rejected."""
        with pytest.raises(ResolutionError) as exc_info:
            validate_version(version)
        assert exc_info.value.code == "invalid_version"


class TestEncodeVersion:
    """Tests for version encoding in filenames."""

    def test_plain_version_unchanged(self):
        """Common version strings should stay readable."""
        assert encode_version("1.2.0") == "1.2.0"
        assert encode_version("2.0.0-rc.1+build") == "2.0.0-rc.1+build"

    def test_separators_encoded(self):
        """Path separators must never reach the filesystem."""
        encoded = encode_version("1.0/../../x")
        assert "/" not in encoded
        assert decode_version(encoded) == "1.0/../../x"

    def test_distinct_versions_stay_distinct(self):
        """Versions differing only in encoded characters must not collide."""
        versions = ["1.0 beta", "1.0%20beta", "1.0_beta", "1.0/beta", "1.0%2Fbeta"]
        assert len({encode_version(v) for v in versions}) == len(versions)


class TestDeriveKey:
    """Tests for derive_key function."""

    def test_layout(self):
        """Key paths should follow the documented layout."""
        key = derive_key(_plugin("Demo-Plugin"), "1.2.0")

        assert key == StorageKey(
            type=PackageType.PLUGIN, slug="demo-plugin", version="1.2.0"
        )
        assert key.artifact_path == PurePosixPath(
            "plugin/demo-plugin/demo-plugin-1.2.0.zip"
        )
        assert key.metadata_path == PurePosixPath(
            "plugin/demo-plugin/demo-plugin-1.2.0.zip.json"
        )
        assert key.lock_path == PurePosixPath(
            ".locks/plugin/demo-plugin/demo-plugin-1.2.0.lock"
        )

    def test_deterministic(self):
        """The same release always maps to the same key."""
        assert derive_key(_plugin("demo"), "1.0") == derive_key(_plugin("DEMO"), "1.0")

    def test_type_is_part_of_key(self):
        """A theme and a plugin with the same slug get different paths."""
        theme = derive_key(PackageIdentity(slug="demo", type=PackageType.THEME), "1.0")
        plugin = derive_key(_plugin("demo"), "1.0")
        assert theme.artifact_path != plugin.artifact_path

    def test_invalid_version(self):
        """Invalid versions should raise ResolutionError."""
        with pytest.raises(ResolutionError):
            derive_key(_plugin("demo"), "")

    def test_encoded_name_too_long(self):
        """Versions that expand past the filename limit are rejected up front."""
        version = "\u00e9" * 60
        validate_version(version)

        with pytest.raises(ResolutionError) as exc_info:
            derive_key(_plugin("demo"), version)
        assert exc_info.value.code == "invalid_version"

    def test_longest_accepted_names_fit(self):
        """Every file derived from an accepted key fits in one path component."""
        slug = "s" * 200
        version = "1" * (MAX_BASENAME_LENGTH - len(slug) - 1)
        key = derive_key(_plugin(slug), version)

        assert len(key.basename) == MAX_BASENAME_LENGTH
        temp_name = f".{key.basename}.abcdefgh.part"
        names = [
            key.artifact_path.name,
            key.metadata_path.name,
            key.lock_path.name,
            temp_name,
        ]
        for name in names:
            assert len(name.encode()) <= MAX_FILENAME_BYTES

        with pytest.raises(ResolutionError):
            derive_key(_plugin(slug), version + "1")

    def test_str(self):
        """Keys should render as type/slug@version."""
        assert str(derive_key(_plugin("demo"), "1.0")) == "plugin/demo@1.0"


class TestParseArtifactFilename:
    """Tests for parse_artifact_filename function."""

    def test_round_trips_key_basename(self):
        """Should recover the version from an artifact filename."""
        key = derive_key(_plugin("demo"), "1.0/beta")
        assert parse_artifact_filename("demo", key.artifact_path.name) == "1.0/beta"

    def test_foreign_file(self):
        """Files that do not belong to the slug should be ignored."""
        assert parse_artifact_filename("demo", "other-1.0.zip") is None
        assert parse_artifact_filename("demo", "demo-1.0.zip.json") is None
        assert parse_artifact_filename("demo", "demo-.zip") is None
