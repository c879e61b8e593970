"""
Configuration and endpoint layout for the private provider registry API.

Paths follow the HCP Terraform / Terraform Enterprise v2 API:
- registry-providers, registry-provider-versions, registry-provider-version-platforms
  under /api/v2/organizations/{organization}
- gpg-keys under /api/registry/private/v2
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

DEFAULT_REGISTRY_URL = "https://app.terraform.io"
JSON_API_CONTENT_TYPE = "application/vnd.api+json"
USER_AGENT = "provider-publisher"


def _seg(value: str) -> str:
    return quote(value, safe="")


@dataclass(frozen=True)
class RegistryConfig:
    """
    Registry connection settings.

    Attributes:
        organization: Organization owning the private registry.
        namespace: Provider namespace (the organization name on HCP Terraform).
        base_url: API host, without trailing slash.
        registry_name: Registry kind; private registries only.
        request_timeout_s: Total timeout for a single API request.
    """

    organization: str
    namespace: str
    base_url: str = DEFAULT_REGISTRY_URL
    registry_name: str = "private"
    request_timeout_s: float = 30.0

    @property
    def api_root(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def _organization_root(self) -> str:
        return f"{self.api_root}/api/v2/organizations/{_seg(self.organization)}"

    def providers_url(self) -> str:
        return f"{self._organization_root}/registry-providers"

    def provider_url(self, name: str) -> str:
        return (
            f"{self.providers_url()}/{_seg(self.registry_name)}"
            f"/{_seg(self.namespace)}/{_seg(name)}"
        )

    def versions_url(self, name: str) -> str:
        return f"{self.provider_url(name)}/versions"

    def version_url(self, name: str, version: str) -> str:
        return f"{self.versions_url(name)}/{_seg(version)}"

    def platforms_url(self, name: str, version: str) -> str:
        return f"{self.version_url(name, version)}/platforms"

    def gpg_keys_url(self) -> str:
        return f"{self.api_root}/api/registry/{_seg(self.registry_name)}/v2/gpg-keys"
