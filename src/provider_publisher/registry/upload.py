"""
Artifact upload to registry pre-signed URLs.

The registry hands out one pre-signed PUT target per artifact slot
(SHA256SUMS, SHA256SUMS.sig, each platform binary). The URL carries its own
grant, so no registry credentials are sent with the upload.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import aiohttp

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class UploadError(Exception):
    """Raised when an artifact transfer fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Uploader:
    """PUT local files to pre-signed URLs."""

    def __init__(self, timeout_s: float = 300.0) -> None:
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> Uploader:
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
            timeout = aiohttp.ClientTimeout(total=self._timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def upload(self, url: str, file_path: Path) -> None:
        """
        Transfer one file to a pre-signed URL.

        Args:
            url: Pre-signed upload URL returned by the registry.
            file_path: Local file to send.

        Raises:
            UploadError: If the file is missing, the transfer fails, or the
                target answers with a non-2xx status.
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            msg = f"Upload source does not exist: {file_path}"
            raise UploadError(msg)

        try:
            size = file_path.stat().st_size
        except OSError as e:
            msg = f"Unable to read upload source {file_path}: {e}"
            raise UploadError(msg) from e
        logger.info("Uploading file", extra={"path": str(file_path), "size_bytes": size})

        try:
            session = await self._get_session()
            with file_path.open("rb") as f:
                async with session.put(
                    url,
                    data=f,
                    headers={"Content-Length": str(size)},
                ) as resp:
                    if not 200 <= resp.status < 300:
                        error_text = await resp.text()
                        logger.error(
                            "Upload rejected",
                            extra={"url": url, "status": resp.status, "detail": error_text[:500]},
                        )
                        msg = (
                            f"Upload of {file_path.name} failed with HTTP {resp.status}: "
                            f"{error_text[:200]}"
                        )
                        raise UploadError(msg, status_code=resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                "Upload connection error",
                extra={"url": url, "error": str(e)},
            )
            msg = f"Upload of {file_path.name} failed: {e}"
            raise UploadError(msg) from e
        except OSError as e:
            # Local open or read failure
            msg = f"Upload of {file_path.name} failed reading the file: {e}"
            raise UploadError(msg) from e

        logger.info("Uploaded file", extra={"path": str(file_path)})
