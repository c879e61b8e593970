"""
Prometheus metrics for publish runs.

Exports only low-cardinality metrics: labels are resource kinds and artifact
kinds, never provider names, versions, platforms or URLs. A CI job can hand
the textfile to a node-exporter textfile collector.

Usage:
    metrics = PublishMetrics()
    reconciler = Reconciler(context, client, uploader, metrics=metrics)
    ...
    metrics.write_textfile(path)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from prometheus_client import Counter, Gauge, write_to_textfile
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from pathlib import Path

ResourceKind = Literal["provider", "signing_key", "version", "platform"]
ArtifactKind = Literal["shasums", "shasums_sig", "binary"]

RESOURCE_KINDS: tuple[str, ...] = ("provider", "signing_key", "version", "platform")
ARTIFACT_KINDS: tuple[str, ...] = ("shasums", "shasums_sig", "binary")

# Forbidden labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset({"provider", "version", "os", "arch", "url", "filename", "token"})

REQUIRED_METRIC_NAMES = frozenset(
    {
        "provider_publisher_resources_created_total",
        "provider_publisher_uploads_total",
        "provider_publisher_uploads_skipped_total",
        "provider_publisher_checksum_lines_skipped_total",
        "provider_publisher_last_run_success",
    }
)


class PublishMetrics:
    """
    Counters for one publish run on a private CollectorRegistry.

    Metric names:
    - provider_publisher_resources_created_total{kind}
    - provider_publisher_uploads_total{artifact}
    - provider_publisher_uploads_skipped_total{artifact}
    - provider_publisher_checksum_lines_skipped_total
    - provider_publisher_last_run_success
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics.

        Args:
            registry: Prometheus CollectorRegistry. If None, a private one is created.
        """
        self._registry = registry or CollectorRegistry()

        self._resources_created = Counter(
            "provider_publisher_resources_created",
            "Registry resources created by this run",
            labelnames=("kind",),
            registry=self._registry,
        )
        self._uploads = Counter(
            "provider_publisher_uploads",
            "Artifacts uploaded to pre-signed URLs",
            labelnames=("artifact",),
            registry=self._registry,
        )
        self._uploads_skipped = Counter(
            "provider_publisher_uploads_skipped",
            "Artifacts the registry already reported as uploaded",
            labelnames=("artifact",),
            registry=self._registry,
        )
        self._checksum_lines_skipped = Counter(
            "provider_publisher_checksum_lines_skipped",
            "Checksum file lines that did not name a platform archive of this release",
            registry=self._registry,
        )
        self._last_run_success = Gauge(
            "provider_publisher_last_run_success",
            "1 if the last publish run converged, 0 if it failed",
            registry=self._registry,
        )

        # Pre-create label series so absent work reads as 0, not missing
        for kind in RESOURCE_KINDS:
            self._resources_created.labels(kind=kind)
        for artifact in ARTIFACT_KINDS:
            self._uploads.labels(artifact=artifact)
            self._uploads_skipped.labels(artifact=artifact)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_created(self, kind: ResourceKind) -> None:
        self._resources_created.labels(kind=kind).inc()

    def record_upload(self, artifact: ArtifactKind) -> None:
        self._uploads.labels(artifact=artifact).inc()

    def record_upload_skipped(self, artifact: ArtifactKind) -> None:
        self._uploads_skipped.labels(artifact=artifact).inc()

    def record_checksum_line_skipped(self, _line: str = "") -> None:
        self._checksum_lines_skipped.inc()

    def record_run(self, *, success: bool) -> None:
        self._last_run_success.set(1 if success else 0)

    def write_textfile(self, path: Path) -> None:
        """Write all metrics in Prometheus text format (atomic replace)."""
        write_to_textfile(str(path), self._registry)
