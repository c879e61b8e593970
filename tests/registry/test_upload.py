"""Tests for artifact upload to pre-signed URLs."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from provider_publisher.registry.upload import Uploader, UploadError

UPLOAD_URL = "https://archivist.example/v1/object/abc?grant=xyz"


def _session_with_status(status: int, text: str = "") -> MagicMock:
    """Mock session whose put() answers with the given status."""
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)

    session = MagicMock()
    session.closed = False
    session.put = MagicMock(return_value=response)
    session.close = AsyncMock()
    return session


class TestUploader:
    """Tests for Uploader."""

    @pytest.fixture
    def artifact(self, tmp_path: Path) -> Path:
        path = tmp_path / "terraform-provider-foo_1.0.0_SHA256SUMS"
        path.write_bytes(b"abc123 terraform-provider-foo_1.0.0_linux_amd64.zip\n")
        return path

    @pytest.mark.asyncio
    async def test_successful_upload(self, artifact: Path) -> None:
        """The file body is PUT to the pre-signed URL."""
        uploader = Uploader()
        session = _session_with_status(200)
        uploader._session = session

        await uploader.upload(UPLOAD_URL, artifact)

        session.put.assert_called_once()
        args, kwargs = session.put.call_args
        assert args == (UPLOAD_URL,)
        assert kwargs["headers"] == {"Content-Length": str(artifact.stat().st_size)}

    @pytest.mark.asyncio
    async def test_no_registry_credentials(self, artifact: Path) -> None:
        """Upload requests never carry an Authorization header."""
        uploader = Uploader()
        session = _session_with_status(200)
        uploader._session = session

        await uploader.upload(UPLOAD_URL, artifact)

        headers = session.put.call_args.kwargs["headers"]
        assert "Authorization" not in headers

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, artifact: Path) -> None:
        """Rejected uploads raise with the HTTP status."""
        uploader = Uploader()
        uploader._session = _session_with_status(403, text="expired grant")

        with pytest.raises(UploadError, match="HTTP 403") as exc_info:
            await uploader.upload(UPLOAD_URL, artifact)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path: Path) -> None:
        """A missing source file fails before any request."""
        uploader = Uploader()
        session = _session_with_status(200)
        uploader._session = session

        with pytest.raises(UploadError, match="does not exist"):
            await uploader.upload(UPLOAD_URL, tmp_path / "missing.zip")

        session.put.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_error_raises(self, artifact: Path) -> None:
        uploader = Uploader()
        session = _session_with_status(200)
        session.put = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))
        uploader._session = session

        with pytest.raises(UploadError) as exc_info:
            await uploader.upload(UPLOAD_URL, artifact)

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        uploader = Uploader()
        session = _session_with_status(200)
        uploader._session = session

        await uploader.close()

        session.close.assert_awaited_once()
        assert uploader._session is None

    @pytest.mark.asyncio
    async def test_unreadable_file_raises(self, artifact: Path) -> None:
        """Local read failures surface as UploadError, not a bare OSError."""
        uploader = Uploader()
        session = _session_with_status(200)
        uploader._session = session

        with (
            patch.object(Path, "open", side_effect=PermissionError("Permission denied")),
            pytest.raises(UploadError, match="Permission denied") as exc_info,
        ):
            await uploader.upload(UPLOAD_URL, artifact)

        assert exc_info.value.status_code is None
        session.put.assert_not_called()
