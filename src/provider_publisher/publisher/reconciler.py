"""Reconcile a local provider release against the private registry.

Sequence (each step reads before it writes, so re-running converges):
1. Resolve release metadata from the release directory
2. Ensure provider
3. Ensure signing key (matched by exact ASCII armor)
4. Ensure provider version
5. Locate SHA256SUMS and SHA256SUMS.sig
6. Upload each of them unless the version reports it uploaded
7. For every platform archive in SHA256SUMS: ensure platform, upload binary
   unless the platform reports it uploaded

A failure at any step aborts the run. Resources created by earlier steps are
kept: the registry has no transactions, and a re-run picks up where this one
stopped. The registry also has no compare-and-create, so two concurrent runs
for the same release can race between lookup and create; publishing assumes
a single writer per provider.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from provider_publisher.registry.client import RegistryError
from provider_publisher.release.checksums import iter_platform_artifacts
from provider_publisher.release.locator import (
    DiscoveryError,
    ProviderIdentity,
    find_signed_checksums,
    resolve_release_metadata,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from provider_publisher.metrics import ArtifactKind, PublishMetrics, ResourceKind
    from provider_publisher.publisher.context import PublishContext
    from provider_publisher.registry.models import (
        Provider,
        ProviderPlatform,
        ProviderVersion,
        SigningKey,
    )
    from provider_publisher.release.checksums import LocalArtifactEntry
    from provider_publisher.release.locator import ReleaseMetadata

logger = logging.getLogger(__name__)


class RegistryAPI(Protocol):
    """Registry operations the reconciler depends on (matches RegistryClient)."""

    async def get_provider(self, name: str) -> Provider | None: ...

    async def create_provider(self, name: str) -> Provider: ...

    async def list_signing_keys(self) -> list[SigningKey] | None: ...

    async def create_signing_key(self, ascii_armor: str) -> SigningKey: ...

    async def get_provider_version(self, name: str, version: str) -> ProviderVersion | None: ...

    async def create_provider_version(
        self, name: str, version: str, protocols: Sequence[str], key_id: str
    ) -> ProviderVersion: ...

    async def list_platforms(self, name: str, version: str) -> list[ProviderPlatform] | None: ...

    async def create_platform(
        self, name: str, version: str, os: str, arch: str, shasum: str, filename: str
    ) -> ProviderPlatform: ...


class ArtifactUploader(Protocol):
    """Upload primitive (matches Uploader)."""

    async def upload(self, url: str, file_path: Path) -> None: ...


class PublishState(str, Enum):
    """Progress of a publish run."""

    START = "START"
    PROVIDER_ENSURED = "PROVIDER_ENSURED"
    KEY_ENSURED = "KEY_ENSURED"
    VERSION_ENSURED = "VERSION_ENSURED"
    SUMS_UPLOADED = "SUMS_UPLOADED"
    SIG_UPLOADED = "SIG_UPLOADED"
    PLATFORMS_RECONCILED = "PLATFORMS_RECONCILED"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class PublishReport:
    """Outcome of a publish run.

    Attributes:
        provider: Fully-qualified provider name (<namespace>/<name>).
        version: Published version.
        created: Resource kind -> number created by this run.
        uploaded: Artifact filenames uploaded by this run.
        skipped_uploads: Artifact filenames the registry already held.
        platforms: (os, arch) pairs reconciled, in checksum file order.
        state: Final state.
    """

    provider: str
    version: str
    created: dict[str, int] = field(default_factory=dict)
    uploaded: list[str] = field(default_factory=list)
    skipped_uploads: list[str] = field(default_factory=list)
    platforms: list[tuple[str, str]] = field(default_factory=list)
    state: PublishState = PublishState.START

    @property
    def total_created(self) -> int:
        return sum(self.created.values())


@dataclass(frozen=True)
class ReleasePlan:
    """Local view of a release, resolved without contacting the registry."""

    identity: ProviderIdentity
    metadata: ReleaseMetadata
    checksums_path: Path
    signature_path: Path
    entries: tuple[LocalArtifactEntry, ...]


def plan_release(context: PublishContext) -> ReleasePlan:
    """Resolve everything a run would publish, touching only the filesystem.

    Raises:
        DiscoveryError: If the release files are missing or malformed.
    """
    metadata = resolve_release_metadata(context.provider_dir, context.repository_root)
    checksums_path, signature_path = find_signed_checksums(context.provider_dir)
    entries = tuple(
        iter_platform_artifacts(
            _read_checksums(checksums_path), metadata.provider_name, metadata.version
        )
    )
    return ReleasePlan(
        identity=ProviderIdentity.from_metadata(metadata, context.namespace),
        metadata=metadata,
        checksums_path=checksums_path,
        signature_path=signature_path,
        entries=entries,
    )


def _read_checksums(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        msg = f"Unable to read checksum file {path}: {e}"
        raise DiscoveryError(msg) from e


class Reconciler:
    """
    Converges the registry to match one local provider release.

    Not reusable: create one per run.
    """

    def __init__(
        self,
        context: PublishContext,
        client: RegistryAPI,
        uploader: ArtifactUploader,
        metrics: PublishMetrics | None = None,
    ) -> None:
        self._context = context
        self._client = client
        self._uploader = uploader
        self._metrics = metrics
        self._state = PublishState.START
        self._history: list[PublishState] = [PublishState.START]
        self._report: PublishReport | None = None

    @property
    def state(self) -> PublishState:
        return self._state

    @property
    def history(self) -> list[PublishState]:
        return list(self._history)

    def _transition(self, state: PublishState) -> None:
        logger.debug(
            "Publish state transition",
            extra={"from_state": self._state.value, "to_state": state.value},
        )
        self._state = state
        self._history.append(state)
        if self._report is not None:
            self._report.state = state

    def _record_created(self, kind: ResourceKind) -> None:
        assert self._report is not None
        self._report.created[kind] = self._report.created.get(kind, 0) + 1
        if self._metrics is not None:
            self._metrics.record_created(kind)

    async def run(self) -> PublishReport:
        """
        Execute the full publish sequence.

        Returns:
            PublishReport in state DONE.

        Raises:
            DiscoveryError: Release files missing or malformed.
            RegistryError: Unexpected registry response.
            UploadError: Artifact transfer failed.
        """
        if self._state is not PublishState.START:
            msg = f"Reconciler already ran (state={self._state.value})"
            raise RuntimeError(msg)

        try:
            report = await self._run()
        except Exception:
            self._transition(PublishState.FAILED)
            if self._metrics is not None:
                self._metrics.record_run(success=False)
            raise

        if self._metrics is not None:
            self._metrics.record_run(success=True)
        return report

    async def _run(self) -> PublishReport:
        ctx = self._context
        metadata = resolve_release_metadata(ctx.provider_dir, ctx.repository_root)
        identity = ProviderIdentity.from_metadata(metadata, ctx.namespace)
        self._report = PublishReport(provider=identity.full_name, version=metadata.version)

        logger.info(
            "Resolved release",
            extra={
                "provider": identity.full_name,
                "version": metadata.version,
                "protocols": list(metadata.protocol_versions),
                "manifest_format": metadata.source_format.value,
            },
        )

        await self._ensure_provider(identity)
        self._transition(PublishState.PROVIDER_ENSURED)

        key = await self._ensure_signing_key()
        self._transition(PublishState.KEY_ENSURED)

        version = await self._ensure_version(identity, metadata, key.key_id)
        self._transition(PublishState.VERSION_ENSURED)

        checksums_path, signature_path = find_signed_checksums(ctx.provider_dir)

        logger.info("Checking if we need to upload sha256 file")
        await self._upload_if_missing(
            "shasums",
            uploaded=version.shasums_uploaded,
            url=version.shasums_upload_url,
            path=checksums_path,
        )
        self._transition(PublishState.SUMS_UPLOADED)

        logger.info("Checking if we need to upload sig file")
        await self._upload_if_missing(
            "shasums_sig",
            uploaded=version.shasums_sig_uploaded,
            url=version.shasums_sig_upload_url,
            path=signature_path,
        )
        self._transition(PublishState.SIG_UPLOADED)

        on_skip = self._metrics.record_checksum_line_skipped if self._metrics else None
        entries = iter_platform_artifacts(
            _read_checksums(checksums_path),
            metadata.provider_name,
            metadata.version,
            on_skip=on_skip,
        )
        if ctx.upload_concurrency > 1:
            await self._reconcile_platforms_concurrently(identity, metadata.version, list(entries))
        else:
            for entry in entries:
                await self._reconcile_platform(identity, metadata.version, entry)
        self._transition(PublishState.PLATFORMS_RECONCILED)

        logger.info(
            "Successfully published %s %s",
            identity.full_name,
            metadata.version,
            extra={
                "resources_created": self._report.total_created,
                "uploaded": len(self._report.uploaded),
                "skipped_uploads": len(self._report.skipped_uploads),
            },
        )
        self._transition(PublishState.DONE)
        return self._report

    async def _ensure_provider(self, identity: ProviderIdentity) -> Provider:
        logger.info(
            "Checking to see if provider already exists",
            extra={"provider": identity.full_name},
        )
        provider = await self._client.get_provider(identity.name)
        if provider is None:
            logger.info(
                "Provider did not exist, creating",
                extra={"provider": identity.full_name},
            )
            provider = await self._client.create_provider(identity.name)
            self._record_created("provider")
        return provider

    async def _ensure_signing_key(self) -> SigningKey:
        logger.info("Checking to see if gpg key exists")
        existing = await self._client.list_signing_keys() or []
        key = next((k for k in existing if k.ascii_armor == self._context.gpg_key), None)
        if key is None:
            logger.info("Gpg key does not exist, creating")
            key = await self._client.create_signing_key(self._context.gpg_key)
            self._record_created("signing_key")
        logger.info("Using gpg key", extra={"key_id": key.key_id})
        return key

    async def _ensure_version(
        self,
        identity: ProviderIdentity,
        metadata: ReleaseMetadata,
        key_id: str,
    ) -> ProviderVersion:
        logger.info(
            "Checking to see if provider version exists",
            extra={"provider": identity.full_name, "version": metadata.version},
        )
        version = await self._client.get_provider_version(identity.name, metadata.version)
        if version is None:
            logger.info(
                "Creating new provider version",
                extra={"provider": identity.full_name, "version": metadata.version},
            )
            version = await self._client.create_provider_version(
                identity.name,
                metadata.version,
                metadata.protocol_versions,
                key_id,
            )
            self._record_created("version")
        return version

    async def _upload_if_missing(
        self,
        artifact: ArtifactKind,
        *,
        uploaded: bool,
        url: str | None,
        path: Path,
    ) -> None:
        """Upload one artifact unless the registry already holds it."""
        assert self._report is not None
        if uploaded:
            logger.info("File already uploaded", extra={"artifact": path.name})
            self._report.skipped_uploads.append(path.name)
            if self._metrics is not None:
                self._metrics.record_upload_skipped(artifact)
            return

        if not url:
            msg = f"Registry returned no upload link for {path.name}"
            raise RegistryError(msg)

        await self._uploader.upload(url, path)
        self._report.uploaded.append(path.name)
        if self._metrics is not None:
            self._metrics.record_upload(artifact)

    async def _ensure_platform(
        self,
        identity: ProviderIdentity,
        version: str,
        entry: LocalArtifactEntry,
        existing: Sequence[ProviderPlatform],
    ) -> ProviderPlatform:
        platform = next((p for p in existing if p.platform == entry.platform), None)
        if platform is None:
            logger.info(
                "Creating platform",
                extra={"os": entry.os, "arch": entry.arch, "version": version},
            )
            platform = await self._client.create_platform(
                identity.name,
                version,
                entry.os,
                entry.arch,
                entry.shasum,
                entry.filename,
            )
            self._record_created("platform")
        return platform

    async def _reconcile_platform(
        self,
        identity: ProviderIdentity,
        version: str,
        entry: LocalArtifactEntry,
    ) -> None:
        assert self._report is not None
        logger.info(
            "Checking to see if platform already exists",
            extra={"os": entry.os, "arch": entry.arch, "version": version},
        )
        existing = await self._client.list_platforms(identity.name, version) or []
        platform = await self._ensure_platform(identity, version, entry, existing)
        self._report.platforms.append(entry.platform)

        await self._upload_if_missing(
            "binary",
            uploaded=platform.provider_binary_uploaded,
            url=platform.provider_binary_upload_url,
            path=self._context.provider_dir / entry.filename,
        )

    async def _reconcile_platforms_concurrently(
        self,
        identity: ProviderIdentity,
        version: str,
        entries: list[LocalArtifactEntry],
    ) -> None:
        """
        Ensure every platform, then upload pending binaries in parallel.

        All lookups and creates happen before any upload starts; entries
        repeating an (os, arch) pair are dropped so each platform is created
        at most once.
        """
        assert self._report is not None
        existing = list(await self._client.list_platforms(identity.name, version) or [])

        pending: list[tuple[ProviderPlatform, LocalArtifactEntry]] = []
        seen: set[tuple[str, str]] = set()
        for entry in entries:
            if entry.platform in seen:
                logger.warning(
                    "Duplicate platform in checksum file, ignoring",
                    extra={"os": entry.os, "arch": entry.arch, "artifact": entry.filename},
                )
                continue
            seen.add(entry.platform)

            platform = await self._ensure_platform(identity, version, entry, existing)
            self._report.platforms.append(entry.platform)
            pending.append((platform, entry))

        semaphore = asyncio.Semaphore(self._context.upload_concurrency)

        async def upload_binary(platform: ProviderPlatform, entry: LocalArtifactEntry) -> None:
            async with semaphore:
                await self._upload_if_missing(
                    "binary",
                    uploaded=platform.provider_binary_uploaded,
                    url=platform.provider_binary_upload_url,
                    path=self._context.provider_dir / entry.filename,
                )

        tasks = [asyncio.create_task(upload_binary(p, e)) for p, e in pending]
        try:
            await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
