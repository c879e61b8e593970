"""Checksum file matching for provider release archives.

SHA256SUMS format (one entry per line, produced by goreleaser):
    <sha256>  terraform-provider-<name>_<version>_<os>_<arch>.zip

The file may list entries that are not platform archives of this provider
(other providers, the manifest JSON, source tarballs). Those lines are
skipped, never treated as errors.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

PROVIDER_PREFIX = "terraform-provider-"
ARCHIVE_EXTENSION = "zip"

# Format: {provider}_{version}_{os}_{arch}.{extension}
ARTIFACT_FILENAME_PATTERN = re.compile(
    r"^"
    r"(?P<provider>[a-zA-Z0-9-]+)"
    r"_"
    r"(?P<version>[a-zA-Z0-9-.]+)"
    r"_"
    r"(?P<os>[a-zA-Z0-9-]+)"
    r"_"
    r"(?P<arch>[a-zA-Z0-9-]+)"
    r"\."
    r"(?P<extension>[a-zA-Z0-9-.]+)"
    r"$"
)


@dataclass(frozen=True)
class ArtifactFilename:
    """Decoded components of a release archive filename."""

    provider: str
    version: str
    os: str
    arch: str
    extension: str


@dataclass(frozen=True)
class LocalArtifactEntry:
    """Platform archive listed in the checksum file.

    Attributes:
        shasum: Hex SHA256 digest as written in the checksum file.
        filename: Archive filename, relative to the release directory.
        os: Target operating system (e.g., "linux").
        arch: Target CPU architecture (e.g., "amd64").
    """

    shasum: str
    filename: str
    os: str
    arch: str

    @property
    def platform(self) -> tuple[str, str]:
        """(os, arch) key identifying the registry platform."""
        return (self.os, self.arch)


def parse_artifact_filename(filename: str) -> ArtifactFilename | None:
    """Decode an archive filename, or None if it does not follow the pattern."""
    match = ARTIFACT_FILENAME_PATTERN.match(filename)
    if match is None:
        return None
    return ArtifactFilename(
        provider=match.group("provider"),
        version=match.group("version"),
        os=match.group("os"),
        arch=match.group("arch"),
        extension=match.group("extension"),
    )


def iter_platform_artifacts(
    content: str | bytes,
    provider_name: str,
    version: str,
    *,
    on_skip: Callable[[str], None] | None = None,
) -> Iterator[LocalArtifactEntry]:
    """Yield the platform archives of one provider release from a checksum file.

    Args:
        content: Raw checksum file content.
        provider_name: Provider short name, without the terraform-provider- prefix.
        version: Expected release version.
        on_skip: Called with the stripped line for every non-empty line
            that is skipped.

    Yields:
        LocalArtifactEntry for every line naming a zip archive of this
        provider and version.
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")

    expected_provider = f"{PROVIDER_PREFIX}{provider_name}"

    def skip(line: str, reason: str) -> None:
        logger.debug("Skipping checksum line", extra={"line": line, "reason": reason})
        if on_skip is not None:
            on_skip(line)

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        parts = line.split()
        if len(parts) != 2:
            skip(line, "expected '<shasum> <filename>'")
            continue
        shasum, filename = parts

        decoded = parse_artifact_filename(filename)
        if decoded is None:
            skip(line, "filename does not match archive pattern")
            continue

        if decoded.extension != ARCHIVE_EXTENSION:
            skip(line, f"not a .{ARCHIVE_EXTENSION} archive")
            continue
        if decoded.provider != expected_provider or decoded.version != version:
            skip(line, "archive of another provider or version")
            continue

        yield LocalArtifactEntry(
            shasum=shasum,
            filename=filename,
            os=decoded.os,
            arch=decoded.arch,
        )
