"""Private provider registry API.

- Typed JSON:API resource models
- Single-attempt REST client (get/list/create per resource type)
- Pre-signed URL uploader
"""

from provider_publisher.registry.client import RegistryClient, RegistryError
from provider_publisher.registry.models import (
    Provider,
    ProviderPlatform,
    ProviderVersion,
    SigningKey,
)
from provider_publisher.registry.types import RegistryConfig
from provider_publisher.registry.upload import Uploader, UploadError

__all__ = [
    "Provider",
    "ProviderPlatform",
    "ProviderVersion",
    "RegistryClient",
    "RegistryConfig",
    "RegistryError",
    "SigningKey",
    "UploadError",
    "Uploader",
]
