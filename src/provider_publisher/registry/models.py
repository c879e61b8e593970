"""Registry resource models.

The registry speaks JSON:API. Every resource arrives as:

    {
        "id": "provver-y5KZUsSBRLV9zCtL",
        "type": "registry-provider-versions",
        "attributes": {"version": "1.0.0", "shasums-uploaded": false, ...},
        "links": {"shasums-upload": "https://archivist.terraform.io/v1/object/..."}
    }

Models read their fields straight out of `attributes` and `links` through
alias paths, and can also be built by field name (tests, fakes). Unknown
attributes are ignored since the registry adds fields over time.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import AliasPath, BaseModel, ConfigDict, Field

__all__ = [
    "Provider",
    "ProviderPlatform",
    "ProviderVersion",
    "RegistryResource",
    "SigningKey",
    "parse_collection",
    "parse_document",
]

ResourceT = TypeVar("ResourceT", bound="RegistryResource")


def _attr(name: str) -> AliasPath:
    return AliasPath("attributes", name)


def _link(name: str) -> AliasPath:
    return AliasPath("links", name)


class RegistryResource(BaseModel):
    """Base class for JSON:API resources returned by the registry."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    id: str | None = Field(default=None, description="Opaque registry identifier")


class Provider(RegistryResource):
    """registry-providers resource."""

    name: str = Field(validation_alias=_attr("name"))
    namespace: str = Field(validation_alias=_attr("namespace"))
    registry_name: str = Field(default="private", validation_alias=_attr("registry-name"))


class SigningKey(RegistryResource):
    """gpg-keys resource."""

    key_id: str = Field(validation_alias=_attr("key-id"))
    ascii_armor: str = Field(validation_alias=_attr("ascii-armor"), repr=False)
    namespace: str | None = Field(default=None, validation_alias=_attr("namespace"))


class ProviderVersion(RegistryResource):
    """registry-provider-versions resource.

    The two upload flags are independent: the checksum file and its
    signature each have their own pre-signed upload link.
    """

    version: str = Field(validation_alias=_attr("version"))
    protocols: list[str] = Field(default_factory=list, validation_alias=_attr("protocols"))
    key_id: str | None = Field(default=None, validation_alias=_attr("key-id"))
    shasums_uploaded: bool = Field(validation_alias=_attr("shasums-uploaded"))
    shasums_sig_uploaded: bool = Field(validation_alias=_attr("shasums-sig-uploaded"))
    shasums_upload_url: str | None = Field(
        default=None, validation_alias=_link("shasums-upload"), repr=False
    )
    shasums_sig_upload_url: str | None = Field(
        default=None, validation_alias=_link("shasums-sig-upload"), repr=False
    )


class ProviderPlatform(RegistryResource):
    """registry-provider-version-platforms resource."""

    os: str = Field(validation_alias=_attr("os"))
    arch: str = Field(validation_alias=_attr("arch"))
    shasum: str | None = Field(default=None, validation_alias=_attr("shasum"))
    filename: str | None = Field(default=None, validation_alias=_attr("filename"))
    provider_binary_uploaded: bool = Field(
        validation_alias=_attr("provider-binary-uploaded")
    )
    provider_binary_upload_url: str | None = Field(
        default=None, validation_alias=_link("provider-binary-upload"), repr=False
    )

    @property
    def platform(self) -> tuple[str, str]:
        return (self.os, self.arch)


def parse_document(payload: Any, model: type[ResourceT]) -> ResourceT:
    """Parse a single-resource document ({"data": {...}}).

    Raises:
        ValueError: If the document has no resource object.
        pydantic.ValidationError: If the resource does not match the model.
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        msg = f"Expected a single {model.__name__} resource in response"
        raise ValueError(msg)
    return model.model_validate(data)


def parse_collection(payload: Any, model: type[ResourceT]) -> list[ResourceT]:
    """Parse a collection document ({"data": [...]})."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if data is None:
        return []
    if not isinstance(data, list):
        msg = f"Expected a list of {model.__name__} resources in response"
        raise ValueError(msg)
    return [model.model_validate(item) for item in data]
