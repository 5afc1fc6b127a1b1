"""Download of blobs through temporary-access URLs."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from chunk_relay.storage.base import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


def redact_access_url(url: str) -> str:
    """Drop the query string, which carries the access token."""

    return urlparse(url)._replace(query="").geturl()


def download_access_url(
    url: str,
    *,
    timeout_seconds: float = 30.0,
    max_retries: int = DEFAULT_MAX_RETRIES,
    transport: httpx.BaseTransport | None = None,
) -> bytes:
    """Fetch the bytes behind a ``file://`` or ``http(s)://`` access URL."""

    parsed = urlparse(url)
    if parsed.scheme == "file":
        path = Path(url2pathname(parsed.path))
        try:
            return path.read_bytes()
        except FileNotFoundError as error:
            raise BlobNotFoundError(url) from error
    if parsed.scheme not in ("http", "https"):
        raise StorageError(f"Unsupported access URL scheme: {parsed.scheme!r}")

    shown = redact_access_url(url)
    with httpx.Client(
        timeout=httpx.Timeout(timeout_seconds, connect=10.0),
        transport=transport or httpx.HTTPTransport(retries=max_retries),
        follow_redirects=True,
    ) as client:
        try:
            response = client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == httpx.codes.NOT_FOUND:
                raise BlobNotFoundError(shown) from exc
            raise StorageError(
                f"Failed to download {shown}: HTTP {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error downloading %s: %s", shown, exc)
            raise StorageError(f"Failed to download {shown}") from exc
    return response.content
