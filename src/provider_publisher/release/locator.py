"""Release discovery for a built provider.

Two manifest layouts exist, depending on the goreleaser generation that
produced the release:

Per-version manifest (current):
    dist/terraform-provider-<name>_<version>_manifest.json
        {"version": 1, "metadata": {"protocol_versions": ["6.0"]}}

Metadata + registry manifest (older):
    dist/metadata.json
        {"project_name": "terraform-provider-<name>", "version": "<version>", ...}
    <repository root>/terraform-registry-manifest.json
        {"version": 1, "metadata": {"protocol_versions": ["5.0"]}}

The layout is detected once; the selected source is then read through a single
entry point so both layouts yield the same ReleaseMetadata.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

import orjson

from provider_publisher.release.checksums import PROVIDER_PREFIX

MANIFEST_SUFFIX = "manifest.json"
METADATA_FILENAME = "metadata.json"
REGISTRY_MANIFEST_FILENAME = "terraform-registry-manifest.json"
CHECKSUMS_SUFFIX = "SHA256SUMS"
SIGNATURE_SUFFIX = "SHA256SUMS.sig"
REGISTRY_NAME = "private"


class DiscoveryError(Exception):
    """Raised when release files are missing or malformed."""


class ManifestFormat(str, Enum):
    """Layout the release metadata was read from."""

    PER_VERSION_MANIFEST = "per_version_manifest"
    METADATA_WITH_REGISTRY_MANIFEST = "metadata_with_registry_manifest"


@dataclass(frozen=True)
class ReleaseMetadata:
    """What the registry should hold for this release.

    Attributes:
        provider_name: Provider short name (prefix stripped).
        version: Release version string.
        protocol_versions: Terraform plugin protocol versions, in file order.
        source_format: Layout the metadata was read from.
    """

    provider_name: str
    version: str
    protocol_versions: tuple[str, ...]
    source_format: ManifestFormat


@dataclass(frozen=True)
class ProviderIdentity:
    """Registry coordinates of the provider being published."""

    name: str
    namespace: str
    registry_name: str = REGISTRY_NAME

    @property
    def full_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_metadata(cls, metadata: ReleaseMetadata, namespace: str) -> ProviderIdentity:
        return cls(name=metadata.provider_name, namespace=namespace)


def _strip_provider_prefix(value: str) -> str:
    if not value.startswith(PROVIDER_PREFIX) or len(value) == len(PROVIDER_PREFIX):
        msg = f"Invalid provider file names {value!r}: expected prefix {PROVIDER_PREFIX!r}"
        raise DiscoveryError(msg)
    return value[len(PROVIDER_PREFIX) :]


def _load_json(path: Path) -> dict[str, Any]:
    try:
        data = orjson.loads(path.read_bytes())
    except FileNotFoundError as e:
        msg = f"File not found: {path}"
        raise DiscoveryError(msg) from e
    except OSError as e:
        msg = f"Unable to read {path}: {e}"
        raise DiscoveryError(msg) from e
    except orjson.JSONDecodeError as e:
        msg = f"Invalid JSON in {path}: {e}"
        raise DiscoveryError(msg) from e
    if not isinstance(data, dict):
        msg = f"Expected a JSON object in {path}"
        raise DiscoveryError(msg)
    return data


def _read_protocol_versions(path: Path) -> tuple[str, ...]:
    """Read metadata.protocol_versions from a registry manifest file."""
    data = _load_json(path)
    metadata = data.get("metadata")
    protocols = metadata.get("protocol_versions") if isinstance(metadata, dict) else None
    if not isinstance(protocols, list) or not all(isinstance(p, str) for p in protocols):
        msg = f"Missing or invalid metadata.protocol_versions in {path}"
        raise DiscoveryError(msg)
    return tuple(protocols)


@dataclass(frozen=True)
class PerVersionManifestSource:
    """<prefixed-provider>_<version>_manifest.json inside the release directory."""

    format: ClassVar[ManifestFormat] = ManifestFormat.PER_VERSION_MANIFEST

    manifest_path: Path

    def read(self) -> ReleaseMetadata:
        parts = self.manifest_path.name.split("_")
        if len(parts) != 3:
            msg = f"Invalid manifest file {self.manifest_path.name}"
            raise DiscoveryError(msg)

        provider_name = _strip_provider_prefix(parts[0])
        version = parts[1]
        if not version:
            msg = f"Invalid manifest file {self.manifest_path.name}: empty version"
            raise DiscoveryError(msg)

        return ReleaseMetadata(
            provider_name=provider_name,
            version=version,
            protocol_versions=_read_protocol_versions(self.manifest_path),
            source_format=self.format,
        )


@dataclass(frozen=True)
class MetadataManifestSource:
    """metadata.json in the release directory plus the repository's registry manifest."""

    format: ClassVar[ManifestFormat] = ManifestFormat.METADATA_WITH_REGISTRY_MANIFEST

    metadata_path: Path
    registry_manifest_path: Path

    def read(self) -> ReleaseMetadata:
        data = _load_json(self.metadata_path)

        project_name = data.get("project_name")
        if not isinstance(project_name, str):
            msg = f"Missing project_name in {self.metadata_path}"
            raise DiscoveryError(msg)
        provider_name = _strip_provider_prefix(project_name)

        version = data.get("version")
        if not isinstance(version, str) or not version:
            msg = f"Missing version in {self.metadata_path}"
            raise DiscoveryError(msg)

        return ReleaseMetadata(
            provider_name=provider_name,
            version=version,
            protocol_versions=_read_protocol_versions(self.registry_manifest_path),
            source_format=self.format,
        )


ManifestSource = PerVersionManifestSource | MetadataManifestSource


def _list_dir(directory: Path) -> list[str]:
    try:
        return sorted(entry.name for entry in directory.iterdir())
    except FileNotFoundError as e:
        msg = f"Directory does not exist: {directory}"
        raise DiscoveryError(msg) from e
    except NotADirectoryError as e:
        msg = f"Not a directory: {directory}"
        raise DiscoveryError(msg) from e
    except OSError as e:
        msg = f"Unable to list {directory}: {e}"
        raise DiscoveryError(msg) from e


def select_manifest_source(provider_dir: Path, repository_root: Path) -> ManifestSource:
    """Inspect the release directory for one of the two manifest layouts.

    Raises:
        DiscoveryError: If neither layout is present.
    """
    entries = _list_dir(provider_dir)

    manifest_name = next((name for name in entries if name.endswith(MANIFEST_SUFFIX)), None)
    if manifest_name is not None:
        return PerVersionManifestSource(manifest_path=provider_dir / manifest_name)

    if METADATA_FILENAME not in entries:
        msg = f"Unable to find manifest or metadata file in {provider_dir}"
        raise DiscoveryError(msg)

    if REGISTRY_MANIFEST_FILENAME not in _list_dir(repository_root):
        msg = f"Unable to find {REGISTRY_MANIFEST_FILENAME} file in {repository_root}"
        raise DiscoveryError(msg)

    return MetadataManifestSource(
        metadata_path=provider_dir / METADATA_FILENAME,
        registry_manifest_path=repository_root / REGISTRY_MANIFEST_FILENAME,
    )


def resolve_release_metadata(provider_dir: Path, repository_root: Path) -> ReleaseMetadata:
    """Read the provider name, version and protocols of a built release.

    Raises:
        DiscoveryError: If the release files are missing or malformed.
    """
    return select_manifest_source(provider_dir, repository_root).read()


def find_signed_checksums(provider_dir: Path) -> tuple[Path, Path]:
    """Locate the checksum file and its detached signature.

    Returns:
        (checksums_path, signature_path)

    Raises:
        DiscoveryError: If either file is missing.
    """
    entries = _list_dir(provider_dir)
    checksums = next((name for name in entries if name.endswith(CHECKSUMS_SUFFIX)), None)
    signature = next((name for name in entries if name.endswith(SIGNATURE_SUFFIX)), None)
    if checksums is None or signature is None:
        msg = f"Unable to find sum file and/or signature file in {provider_dir}"
        raise DiscoveryError(msg)
    return provider_dir / checksums, provider_dir / signature
