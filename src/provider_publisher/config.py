"""
Publish configuration.

Inputs come from GitHub Actions (INPUT_<NAME> environment variables), plain
environment variables for other CI systems, or command line flags, in
increasing order of precedence.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provider_publisher.publisher.context import PublishContext
from provider_publisher.registry.types import DEFAULT_REGISTRY_URL, RegistryConfig

# field name -> env var names, first match wins
ENV_SOURCES: dict[str, tuple[str, ...]] = {
    "organization_name": ("INPUT_ORGANIZATION-NAME", "TFE_ORGANIZATION"),
    "organization_api_token": ("INPUT_ORGANIZATION-API-TOKEN", "TFE_TOKEN"),
    "provider_directory": ("INPUT_PROVIDER-DIRECTORY", "PROVIDER_DIRECTORY"),
    "gpg_key": ("INPUT_GPG-KEY", "GPG_KEY"),
    "namespace": ("INPUT_NAMESPACE", "TFE_NAMESPACE"),
    "registry_url": ("INPUT_REGISTRY-URL", "TFE_URL"),
    "workspace": ("GITHUB_WORKSPACE",),
}

MAX_UPLOAD_CONCURRENCY = 16


class ConfigurationError(ValueError):
    """Raised when a required input is missing or invalid."""


@dataclass
class PublishConfig:
    """Validated inputs for one publish run."""

    organization_name: str = ""
    organization_api_token: str = field(default="", repr=False)
    provider_directory: str = ""
    gpg_key: str = field(default="", repr=False)
    workspace: Path | None = None

    # Defaults to organization_name
    namespace: str = ""
    registry_url: str = DEFAULT_REGISTRY_URL

    request_timeout_s: float = 30.0
    upload_timeout_s: float = 300.0
    upload_concurrency: int = 1

    # Resolve and log the plan without touching the registry
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not self.organization_name:
            raise ConfigurationError("organization-name input is required")
        if not self.dry_run and not self.organization_api_token:
            raise ConfigurationError("organization-api-token input is required")
        if not self.gpg_key.strip():
            raise ConfigurationError("gpg-key input is required")
        if self.workspace is None:
            raise ConfigurationError("$GITHUB_WORKSPACE not defined")
        if not self.namespace:
            self.namespace = self.organization_name
        if not self.registry_url.startswith(("https://", "http://")):
            msg = f"registry_url must be an http(s) URL, got {self.registry_url!r}"
            raise ConfigurationError(msg)
        if self.request_timeout_s <= 0:
            msg = f"request_timeout_s must be > 0, got {self.request_timeout_s}"
            raise ConfigurationError(msg)
        if self.upload_timeout_s <= 0:
            msg = f"upload_timeout_s must be > 0, got {self.upload_timeout_s}"
            raise ConfigurationError(msg)
        if not 1 <= self.upload_concurrency <= MAX_UPLOAD_CONCURRENCY:
            msg = (
                f"upload_concurrency must be 1..{MAX_UPLOAD_CONCURRENCY}, "
                f"got {self.upload_concurrency}"
            )
            raise ConfigurationError(msg)
        self.workspace = Path(self.workspace).resolve()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> PublishConfig:
        """
        Build configuration from environment variables.

        Args:
            environ: Environment mapping (default: os.environ).
            **overrides: Field values taking precedence over the environment;
                None values are ignored.

        Raises:
            ConfigurationError: If a required value is missing or invalid.
        """
        if environ is None:
            environ = os.environ

        values: dict[str, Any] = {}
        for field_name, env_names in ENV_SOURCES.items():
            for env_name in env_names:
                value = environ.get(env_name, "").strip()
                if value:
                    values[field_name] = value
                    break

        # Armored keys span lines; keep the input exactly as given
        for env_name in ENV_SOURCES["gpg_key"]:
            if environ.get(env_name, "").strip():
                values["gpg_key"] = environ[env_name]
                break

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def repository_root(self) -> Path:
        assert self.workspace is not None  # Set in __post_init__
        return self.workspace

    @property
    def provider_dir(self) -> Path:
        return (self.repository_root / self.provider_directory).resolve()

    def registry_config(self) -> RegistryConfig:
        return RegistryConfig(
            organization=self.organization_name,
            namespace=self.namespace,
            base_url=self.registry_url,
            request_timeout_s=self.request_timeout_s,
        )

    def to_context(self) -> PublishContext:
        return PublishContext(
            organization=self.organization_name,
            namespace=self.namespace,
            provider_dir=self.provider_dir,
            repository_root=self.repository_root,
            gpg_key=self.gpg_key,
            upload_concurrency=self.upload_concurrency,
        )
