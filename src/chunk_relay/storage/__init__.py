"""Blob storage adapters and the execution key layout."""

from __future__ import annotations

from chunk_relay.config import StorageSettings
from chunk_relay.storage.base import (
    READ_ONLY,
    AccessPermissions,
    BlobNotFoundError,
    BlobStore,
    StorageError,
    list_names,
)
from chunk_relay.storage.local import LocalBlobStore


def open_blob_store(settings: StorageSettings, namespace: str) -> BlobStore:
    """Build the configured blob store bound to ``namespace``."""

    if settings.backend == "azure":
        # azure SDK is imported lazily so local runs do not pay for it
        from chunk_relay.storage.azure_blob import AzureBlobConfig, AzureBlobStore

        return AzureBlobStore(
            AzureBlobConfig(
                account_url=settings.account_url,
                connection_string=settings.connection_string,
                page_size=settings.listing_page_size,
                request_timeout_seconds=settings.request_timeout_seconds,
            ),
            namespace,
        )
    if settings.backend == "local":
        if settings.root is None:
            raise ValueError("Local storage requires a root directory")
        return LocalBlobStore(settings.root, namespace, page_size=settings.listing_page_size)
    raise ValueError(f"Unsupported storage backend: {settings.backend!r}")


__all__ = [
    "READ_ONLY",
    "AccessPermissions",
    "BlobNotFoundError",
    "BlobStore",
    "LocalBlobStore",
    "StorageError",
    "list_names",
    "open_blob_store",
]
