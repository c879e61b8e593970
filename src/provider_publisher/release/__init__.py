"""Local release discovery.

- Manifest/metadata probing for both goreleaser layouts
- SHA256SUMS matching against platform archive filenames
"""

from provider_publisher.release.checksums import (
    ArtifactFilename,
    LocalArtifactEntry,
    iter_platform_artifacts,
    parse_artifact_filename,
)
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

__all__ = [
    "ArtifactFilename",
    "DiscoveryError",
    "LocalArtifactEntry",
    "ManifestFormat",
    "MetadataManifestSource",
    "PerVersionManifestSource",
    "ProviderIdentity",
    "ReleaseMetadata",
    "find_signed_checksums",
    "iter_platform_artifacts",
    "parse_artifact_filename",
    "resolve_release_metadata",
    "select_manifest_source",
]
