"""Tests for release discovery."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from provider_publisher.release.locator import (
    DiscoveryError,
    ManifestFormat,
    MetadataManifestSource,
    PerVersionManifestSource,
    ProviderIdentity,
    ReleaseMetadata,
    find_signed_checksums,
    resolve_release_metadata,
    select_manifest_source,
)


def _write_json(path: Path, data: object) -> None:
    path.write_text(json.dumps(data))


def _registry_manifest(protocols: list[str]) -> dict[str, object]:
    return {"version": 1, "metadata": {"protocol_versions": protocols}}


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    (tmp_path / "dist").mkdir()
    return tmp_path


class TestPerVersionManifest:
    """Release directories holding <provider>_<version>_manifest.json."""

    def test_resolves_name_version_protocols(self, repo: Path) -> None:
        """Name and version come from the filename, protocols from the body."""
        _write_json(
            repo / "dist" / "terraform-provider-foo_1.2.3_manifest.json",
            _registry_manifest(["5.0", "6.0"]),
        )

        metadata = resolve_release_metadata(repo / "dist", repo)

        assert metadata == ReleaseMetadata(
            provider_name="foo",
            version="1.2.3",
            protocol_versions=("5.0", "6.0"),
            source_format=ManifestFormat.PER_VERSION_MANIFEST,
        )

    def test_selected_over_metadata_json(self, repo: Path) -> None:
        """When both layouts are present the per-version manifest wins."""
        _write_json(
            repo / "dist" / "terraform-provider-foo_1.2.3_manifest.json",
            _registry_manifest(["6.0"]),
        )
        _write_json(
            repo / "dist" / "metadata.json",
            {"project_name": "terraform-provider-foo", "version": "9.9.9"},
        )

        source = select_manifest_source(repo / "dist", repo)

        assert isinstance(source, PerVersionManifestSource)
        assert source.read().version == "1.2.3"

    def test_wrong_segment_count(self, repo: Path) -> None:
        """Manifest names must split into exactly three segments."""
        _write_json(
            repo / "dist" / "terraform-provider-foo_1.2.3_extra_manifest.json",
            _registry_manifest(["6.0"]),
        )

        with pytest.raises(DiscoveryError, match="Invalid manifest file"):
            resolve_release_metadata(repo / "dist", repo)

    def test_missing_prefix(self, repo: Path) -> None:
        """The provider segment must carry the terraform-provider- prefix."""
        _write_json(repo / "dist" / "foo_1.2.3_manifest.json", _registry_manifest(["6.0"]))

        with pytest.raises(DiscoveryError, match="Invalid provider file names"):
            resolve_release_metadata(repo / "dist", repo)

    def test_missing_protocol_versions(self, repo: Path) -> None:
        """A manifest without metadata.protocol_versions is rejected."""
        _write_json(
            repo / "dist" / "terraform-provider-foo_1.2.3_manifest.json",
            {"version": 1, "metadata": {}},
        )

        with pytest.raises(DiscoveryError, match="protocol_versions"):
            resolve_release_metadata(repo / "dist", repo)

    def test_invalid_json(self, repo: Path) -> None:
        """Malformed JSON is a discovery error naming the file."""
        (repo / "dist" / "terraform-provider-foo_1.2.3_manifest.json").write_text("{not json")

        with pytest.raises(DiscoveryError, match="Invalid JSON"):
            resolve_release_metadata(repo / "dist", repo)


class TestMetadataWithRegistryManifest:
    """Release directories holding metadata.json plus a root registry manifest."""

    def test_resolves_from_both_files(self, repo: Path) -> None:
        """Name and version come from metadata.json, protocols from the repository root."""
        _write_json(
            repo / "dist" / "metadata.json",
            {"project_name": "terraform-provider-foo", "tag": "v1.2.3", "version": "1.2.3"},
        )
        _write_json(repo / "terraform-registry-manifest.json", _registry_manifest(["5.0"]))

        source = select_manifest_source(repo / "dist", repo)
        metadata = source.read()

        assert isinstance(source, MetadataManifestSource)
        assert metadata.provider_name == "foo"
        assert metadata.version == "1.2.3"
        assert metadata.protocol_versions == ("5.0",)
        assert metadata.source_format is ManifestFormat.METADATA_WITH_REGISTRY_MANIFEST

    def test_missing_registry_manifest(self, repo: Path) -> None:
        """metadata.json alone is not enough."""
        _write_json(
            repo / "dist" / "metadata.json",
            {"project_name": "terraform-provider-foo", "version": "1.2.3"},
        )

        with pytest.raises(DiscoveryError, match="terraform-registry-manifest.json"):
            resolve_release_metadata(repo / "dist", repo)

    def test_project_name_without_prefix(self, repo: Path) -> None:
        """project_name must carry the provider prefix."""
        _write_json(repo / "dist" / "metadata.json", {"project_name": "foo", "version": "1.2.3"})
        _write_json(repo / "terraform-registry-manifest.json", _registry_manifest(["5.0"]))

        with pytest.raises(DiscoveryError, match="Invalid provider file names"):
            resolve_release_metadata(repo / "dist", repo)

    def test_missing_version(self, repo: Path) -> None:
        """metadata.json without version is rejected."""
        _write_json(repo / "dist" / "metadata.json", {"project_name": "terraform-provider-foo"})
        _write_json(repo / "terraform-registry-manifest.json", _registry_manifest(["5.0"]))

        with pytest.raises(DiscoveryError, match="Missing version"):
            resolve_release_metadata(repo / "dist", repo)


class TestFormatEquivalence:
    """Both layouts describe the same release identically."""

    def test_same_release_same_metadata(self, tmp_path: Path) -> None:
        """Equivalent data in either layout yields identical name, version and protocols."""
        new_repo = tmp_path / "new"
        (new_repo / "dist").mkdir(parents=True)
        _write_json(
            new_repo / "dist" / "terraform-provider-foo_2.0.0_manifest.json",
            _registry_manifest(["5.0", "6.0"]),
        )

        old_repo = tmp_path / "old"
        (old_repo / "dist").mkdir(parents=True)
        _write_json(
            old_repo / "dist" / "metadata.json",
            {"project_name": "terraform-provider-foo", "version": "2.0.0"},
        )
        _write_json(old_repo / "terraform-registry-manifest.json", _registry_manifest(["5.0", "6.0"]))

        new = resolve_release_metadata(new_repo / "dist", new_repo)
        old = resolve_release_metadata(old_repo / "dist", old_repo)

        assert (new.provider_name, new.version, new.protocol_versions) == (
            old.provider_name,
            old.version,
            old.protocol_versions,
        )
        assert new.source_format != old.source_format


class TestDiscoveryFailures:
    """Directories matching neither layout."""

    def test_empty_directory(self, repo: Path) -> None:
        with pytest.raises(DiscoveryError, match="Unable to find manifest or metadata"):
            resolve_release_metadata(repo / "dist", repo)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(DiscoveryError, match="does not exist"):
            resolve_release_metadata(tmp_path / "nope", tmp_path)


class TestFindSignedChecksums:
    """Tests for find_signed_checksums."""

    def test_finds_both_files(self, repo: Path) -> None:
        """Suffix match finds the prefixed goreleaser names."""
        dist = repo / "dist"
        (dist / "terraform-provider-foo_1.0.0_SHA256SUMS").write_text("")
        (dist / "terraform-provider-foo_1.0.0_SHA256SUMS.sig").write_bytes(b"\x00")

        sums, sig = find_signed_checksums(dist)

        assert sums.name == "terraform-provider-foo_1.0.0_SHA256SUMS"
        assert sig.name == "terraform-provider-foo_1.0.0_SHA256SUMS.sig"

    @pytest.mark.parametrize("present", ["SHA256SUMS", "SHA256SUMS.sig"])
    def test_either_missing_fails(self, repo: Path, present: str) -> None:
        """Both the checksum file and its signature are required."""
        (repo / "dist" / f"terraform-provider-foo_1.0.0_{present}").write_text("")

        with pytest.raises(DiscoveryError, match="sum file and/or signature file"):
            find_signed_checksums(repo / "dist")


class TestProviderIdentity:
    """Tests for ProviderIdentity."""

    def test_from_metadata(self) -> None:
        metadata = ReleaseMetadata(
            provider_name="foo",
            version="1.0.0",
            protocol_versions=("6.0",),
            source_format=ManifestFormat.PER_VERSION_MANIFEST,
        )

        identity = ProviderIdentity.from_metadata(metadata, "acme")

        assert identity.full_name == "acme/foo"
        assert identity.registry_name == "private"


class TestUnreadableFiles:
    """Filesystem permission errors are discovery failures."""

    def test_unlistable_directory(self, repo: Path) -> None:
        with (
            patch.object(Path, "iterdir", side_effect=PermissionError("Permission denied")),
            pytest.raises(DiscoveryError, match="Unable to list"),
        ):
            resolve_release_metadata(repo / "dist", repo)

    def test_unreadable_manifest(self, repo: Path) -> None:
        _write_json(
            repo / "dist" / "terraform-provider-foo_1.2.3_manifest.json",
            _registry_manifest(["6.0"]),
        )

        with (
            patch.object(Path, "read_bytes", side_effect=PermissionError("Permission denied")),
            pytest.raises(DiscoveryError, match="Unable to read"),
        ):
            resolve_release_metadata(repo / "dist", repo)
