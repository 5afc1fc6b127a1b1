"""Azure Blob storage adapter: one container per execution namespace."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, generate_blob_sas

from chunk_relay.storage.base import AccessPermissions, BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AzureBlobConfig:
    account_url: str | None
    connection_string: str | None
    page_size: int = 5_000
    request_timeout_seconds: float = 30.0


def build_service_client(config: AzureBlobConfig) -> BlobServiceClient:
    """Connection string wins; otherwise the ambient Azure identity is used."""

    if config.connection_string:
        return BlobServiceClient.from_connection_string(conn_str=config.connection_string)
    if not config.account_url:
        raise StorageError(
            "Azure Blob account URL is required when no connection string is provided.",
        )
    return BlobServiceClient(account_url=config.account_url, credential=DefaultAzureCredential())


class AzureBlobStore:
    """Blob store backed by an Azure Blob container named after the namespace."""

    def __init__(
        self,
        config: AzureBlobConfig,
        namespace: str,
        *,
        service: BlobServiceClient | None = None,
    ) -> None:
        self._config = config
        self.namespace = namespace
        self._service = service if service is not None else build_service_client(config)
        self._container = self._service.get_container_client(namespace)

    def ensure_namespace(self) -> bool:
        try:
            self._container.create_container(timeout=self._config.request_timeout_seconds)
        except ResourceExistsError:
            return False
        except HttpResponseError as exc:
            raise StorageError(f"Failed to create container {self.namespace}") from exc
        logger.info("Created container %s", self.namespace)
        return True

    def delete_namespace(self) -> bool:
        try:
            self._container.delete_container(timeout=self._config.request_timeout_seconds)
        except ResourceNotFoundError:
            return False
        except HttpResponseError as exc:
            raise StorageError(f"Failed to delete container {self.namespace}") from exc
        logger.info("Deleted container %s", self.namespace)
        return True

    def put_text(self, name: str, content: str) -> None:
        try:
            self._container.upload_blob(
                name,
                content.encode("utf-8"),
                overwrite=True,
                timeout=self._config.request_timeout_seconds,
            )
        except HttpResponseError as exc:
            raise StorageError(f"Failed to upload blob {name}") from exc

    def get_text(self, name: str) -> str:
        try:
            downloader = self._container.download_blob(
                name,
                timeout=self._config.request_timeout_seconds,
            )
            return downloader.readall().decode("utf-8")
        except ResourceNotFoundError as exc:
            raise BlobNotFoundError(name) from exc
        except HttpResponseError as exc:
            raise StorageError(f"Failed to download blob {name}") from exc

    def exists(self, name: str) -> bool:
        try:
            return bool(self._container.get_blob_client(name).exists())
        except HttpResponseError as exc:
            raise StorageError(f"Failed to check blob {name}") from exc

    def iter_name_pages(self, prefix: str) -> Iterator[list[str]]:
        pages = self._container.list_blobs(
            name_starts_with=prefix,
            results_per_page=self._config.page_size,
            timeout=self._config.request_timeout_seconds,
        ).by_page()
        try:
            for page in pages:
                yield [blob.name for blob in page]
        except ResourceNotFoundError as exc:
            raise StorageError(f"Container does not exist: {self.namespace}") from exc
        except HttpResponseError as exc:
            raise StorageError(f"Failed to list blobs under {prefix}") from exc

    def temporary_access_url(
        self,
        name: str,
        permissions: AccessPermissions,
        expiry: timedelta,
    ) -> str:
        starts_on = datetime.now(tz=UTC)
        expires_on = starts_on + expiry
        permission = BlobSasPermissions.from_string(permissions.to_flags())
        account_key = getattr(self._service.credential, "account_key", None)
        try:
            if account_key:
                token = generate_blob_sas(
                    account_name=self._service.account_name,
                    container_name=self.namespace,
                    blob_name=name,
                    account_key=account_key,
                    permission=permission,
                    expiry=expires_on,
                )
            else:
                delegation_key = self._service.get_user_delegation_key(
                    key_start_time=starts_on,
                    key_expiry_time=expires_on,
                )
                token = generate_blob_sas(
                    account_name=self._service.account_name,
                    container_name=self.namespace,
                    blob_name=name,
                    user_delegation_key=delegation_key,
                    permission=permission,
                    expiry=expires_on,
                )
        except HttpResponseError as exc:
            raise StorageError(f"Failed to issue access token for {name}") from exc
        blob_url = self._container.get_blob_client(name).url
        return f"{blob_url}?{token}"
