"""
REST client for the private Terraform provider registry.

- One request per call: no retries, no backoff. A failed run is re-run as a
  whole, which is safe because every caller checks before it creates.
- Getters map 404 to None; every other non-2xx status is a RegistryError.
- Bodies are JSON:API documents (application/vnd.api+json).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp
import orjson
from pydantic import ValidationError

from provider_publisher.registry.models import (
    Provider,
    ProviderPlatform,
    ProviderVersion,
    SigningKey,
    parse_collection,
    parse_document,
)
from provider_publisher.registry.types import (
    JSON_API_CONTENT_TYPE,
    USER_AGENT,
    RegistryConfig,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from provider_publisher.registry.models import ResourceT

logger = logging.getLogger(__name__)

# Upper bound on gpg-keys pages followed through links.next
MAX_KEY_PAGES = 100


class RegistryError(Exception):
    """Raised when the registry returns an unexpected response.

    Attributes:
        status_code: HTTP status, or None for transport failures and
            unparseable bodies.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RegistryClient:
    """
    Async client for the provider registry API.

    Each method wraps exactly one resource operation. The caller decides
    whether to look a resource up before creating it.
    """

    def __init__(self, config: RegistryConfig, token: str) -> None:
        """
        Initialize the client.

        Args:
            config: Registry endpoint configuration.
            token: Organization API token, sent as a bearer token.
        """
        self._config = config
        self._token = token
        self._session: aiohttp.ClientSession | None = None

    @property
    def config(self) -> RegistryConfig:
        return self._config

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_s)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Content-Type": JSON_API_CONTENT_TYPE,
                    "Accept": JSON_API_CONTENT_TYPE,
                    "User-Agent": USER_AGENT,
                },
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        allow_missing: bool = False,
    ) -> Any | None:
        """
        Make a single HTTP request against the registry.

        Args:
            method: HTTP method.
            url: Absolute URL.
            body: JSON:API document to send.
            params: Query parameters.
            allow_missing: Return None on 404 instead of raising.

        Returns:
            Decoded JSON body, or None for an allowed 404.

        Raises:
            RegistryError: On any other non-2xx status or transport failure.
        """
        data = orjson.dumps(body) if body is not None else None
        logger.debug("Registry request", extra={"method": method, "url": url})

        try:
            session = await self._get_session()
            async with session.request(method, url, params=params, data=data) as response:
                if allow_missing and response.status == 404:
                    return None

                if not 200 <= response.status < 300:
                    text = await response.text()
                    logger.error(
                        "Registry HTTP error",
                        extra={
                            "method": method,
                            "url": url,
                            "status": response.status,
                            "detail": text[:500],
                        },
                    )
                    msg = f"Invalid response code {response.status} for {method} {url}: {text[:200]}"
                    raise RegistryError(msg, status_code=response.status)

                return await response.json(content_type=None, loads=orjson.loads)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                "Registry request failed",
                extra={"method": method, "url": url, "error": str(e)},
            )
            msg = f"Request {method} {url} failed: {e}"
            raise RegistryError(msg) from e
        except orjson.JSONDecodeError as e:
            msg = f"Invalid JSON from {method} {url}: {e}"
            raise RegistryError(msg) from e

    @staticmethod
    def _one(payload: Any, model: type[ResourceT]) -> ResourceT:
        try:
            return parse_document(payload, model)
        except (ValueError, ValidationError) as e:
            msg = f"Unexpected {model.__name__} response: {e}"
            raise RegistryError(msg) from e

    @staticmethod
    def _many(payload: Any, model: type[ResourceT]) -> list[ResourceT]:
        try:
            return parse_collection(payload, model)
        except (ValueError, ValidationError) as e:
            msg = f"Unexpected {model.__name__} list response: {e}"
            raise RegistryError(msg) from e

    # Providers

    async def get_provider(self, name: str) -> Provider | None:
        """Fetch a provider by name, or None if it does not exist."""
        payload = await self._request("GET", self._config.provider_url(name), allow_missing=True)
        if payload is None:
            return None
        return self._one(payload, Provider)

    async def create_provider(self, name: str) -> Provider:
        """Create a private provider in the configured namespace."""
        body = {
            "data": {
                "type": "registry-providers",
                "attributes": {
                    "name": name,
                    "namespace": self._config.namespace,
                    "registry-name": self._config.registry_name,
                },
            }
        }
        payload = await self._request("POST", self._config.providers_url(), body=body)
        return self._one(payload, Provider)

    # Signing keys

    async def list_signing_keys(self) -> list[SigningKey] | None:
        """
        List every GPG key registered for the namespace.

        Follows links.next until the last page.

        Returns:
            All keys, or None if the key endpoint reports 404.
        """
        url: str | None = self._config.gpg_keys_url()
        params: dict[str, str] | None = {"filter[namespace]": self._config.namespace}
        keys: list[SigningKey] = []
        seen: set[str] = set()

        while url is not None and url not in seen and len(seen) < MAX_KEY_PAGES:
            seen.add(url)
            payload = await self._request("GET", url, params=params, allow_missing=True)
            if payload is None:
                return keys or None
            keys.extend(self._many(payload, SigningKey))

            links = payload.get("links") if isinstance(payload, dict) else None
            next_url = links.get("next") if isinstance(links, dict) else None
            url = next_url if isinstance(next_url, str) and next_url else None
            # links.next already carries the filter and page parameters
            params = None

        return keys

    async def create_signing_key(self, ascii_armor: str) -> SigningKey:
        """Register an ASCII-armored public key for the namespace."""
        body = {
            "data": {
                "type": "gpg-keys",
                "attributes": {
                    "namespace": self._config.namespace,
                    "ascii-armor": ascii_armor,
                },
            }
        }
        payload = await self._request("POST", self._config.gpg_keys_url(), body=body)
        return self._one(payload, SigningKey)

    # Versions

    async def get_provider_version(self, name: str, version: str) -> ProviderVersion | None:
        """Fetch a provider version, or None if it does not exist."""
        payload = await self._request(
            "GET", self._config.version_url(name, version), allow_missing=True
        )
        if payload is None:
            return None
        return self._one(payload, ProviderVersion)

    async def create_provider_version(
        self,
        name: str,
        version: str,
        protocols: Sequence[str],
        key_id: str,
    ) -> ProviderVersion:
        """Create a provider version signed by the given key."""
        body = {
            "data": {
                "type": "registry-provider-versions",
                "attributes": {
                    "version": version,
                    "key-id": key_id,
                    "protocols": list(protocols),
                },
            }
        }
        payload = await self._request("POST", self._config.versions_url(name), body=body)
        return self._one(payload, ProviderVersion)

    # Platforms

    async def list_platforms(self, name: str, version: str) -> list[ProviderPlatform] | None:
        """List the platforms of a provider version, or None on 404."""
        payload = await self._request(
            "GET", self._config.platforms_url(name, version), allow_missing=True
        )
        if payload is None:
            return None
        return self._many(payload, ProviderPlatform)

    async def create_platform(
        self,
        name: str,
        version: str,
        os: str,
        arch: str,
        shasum: str,
        filename: str,
    ) -> ProviderPlatform:
        """Create an (os, arch) platform entry for a provider version."""
        body = {
            "data": {
                "type": "registry-provider-version-platforms",
                "attributes": {
                    "os": os,
                    "arch": arch,
                    "shasum": shasum,
                    "filename": filename,
                },
            }
        }
        payload = await self._request(
            "POST", self._config.platforms_url(name, version), body=body
        )
        return self._one(payload, ProviderPlatform)
