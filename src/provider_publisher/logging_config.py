"""
Structured logging for provider-publisher.

Everything a run logs passes through `redact()` before it is written:
- the registry bearer token (as an Authorization header, a bearer value, or a
  bare `*.atlasv1.*` token)
- ASCII-armored GPG key blocks
- query strings of URLs, which carry the grant of pre-signed upload links

`extra=` fields whose name marks a credential (token, armor, gpg key,
authorization) are dropped entirely.

Usage:
    from provider_publisher.logging_config import setup_logging, get_logger

    setup_logging(json_format=False)
    logger = get_logger(__name__)
    logger.info("Uploading file", extra={"path": "dist/x.zip"})
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import UTC, datetime
from typing import IO, Any

import orjson

# Header form: "Authorization: Bearer abc.atlasv1.def"
_AUTHORIZATION_HEADER = re.compile(r"\bAuthorization:\s*(?:Bearer\s+)?\S+", re.I)
# Bare bearer credential: "Bearer abc.atlasv1.def"
_BEARER_VALUE = re.compile(r"\bBearer\s+[\w\-.~+/=]+")
# HCP Terraform / TFE API token shape
_TFE_TOKEN = re.compile(r"\b[\w]+\.atlasv1\.[\w\-]+")
_PGP_BLOCK = re.compile(r"-----BEGIN PGP [A-Z ]+-----.*?-----END PGP [A-Z ]+-----", re.S)
_URL_QUERY = re.compile(r"(https?://[^\s\"'<>?#]+)[?#][^\s\"'<>]*")

REDACTED = "[REDACTED]"

# Substrings of extra field names that are never logged
CREDENTIAL_FIELD_MARKERS: tuple[str, ...] = (
    "token",
    "authorization",
    "armor",
    "gpg_key",
    "password",
    "secret",
)

# Attributes every LogRecord carries; anything else came in through extra=
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}


def redact(text: str) -> str:
    """Mask credentials and upload grants in free-form text."""
    if not text:
        return text
    text = _PGP_BLOCK.sub("[PGP_BLOCK]", text)
    text = _AUTHORIZATION_HEADER.sub(f"Authorization: {REDACTED}", text)
    text = _BEARER_VALUE.sub(f"Bearer {REDACTED}", text)
    text = _TFE_TOKEN.sub(REDACTED, text)
    return _URL_QUERY.sub(r"\1", text)


def is_credential_field(name: str) -> bool:
    normalized = name.lower().replace("-", "_")
    return any(marker in normalized for marker in CREDENTIAL_FIELD_MARKERS)


def _clean_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [_clean_value(v) for v in value]
    return redact(str(value))


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the extra= fields of a record, redacted and without credentials."""
    return {
        key: _clean_value(value)
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not is_credential_field(key)
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for CI log collection.

    {"ts":"2024-01-01T00:00:00.000+00:00","level":"INFO","logger":"...","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact(record.getMessage()),
        }
        if record.exc_info:
            entry["exc"] = redact(self.formatException(record.exc_info))
        entry.update(record_fields(record))
        return orjson.dumps(entry, default=str).decode()


class SimpleFormatter(logging.Formatter):
    """Human-readable line for local runs: LEVEL logger: message | k=v ..."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:8s} {record.name}: {redact(record.getMessage())}"
        fields = record_fields(record)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + redact(self.formatException(record.exc_info))
        return line


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Install a single redacting handler on the root logger.

    Args:
        level: Root log level.
        json_format: JSON lines (CI) or SimpleFormatter (local runs).
        stream: Output stream (default stderr).
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
