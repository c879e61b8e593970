"""Immutable per-run context threaded through the reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class PublishContext:
    """
    Everything a publish run needs besides the registry connection.

    Attributes:
        organization: Organization owning the private registry.
        namespace: Provider namespace.
        provider_dir: Directory holding the built release.
        repository_root: Repository checkout (holds terraform-registry-manifest.json).
        gpg_key: ASCII-armored public key the checksums are signed with.
        upload_concurrency: Binary uploads allowed in flight (1 = sequential).
    """

    organization: str
    namespace: str
    provider_dir: Path
    repository_root: Path
    gpg_key: str = field(repr=False)
    upload_concurrency: int = 1
