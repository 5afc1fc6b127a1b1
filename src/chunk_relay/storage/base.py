"""Blob store interface shared by worker and coordinator."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol


class StorageError(RuntimeError):
    """Blob storage operation failed."""


class BlobNotFoundError(StorageError):
    """Requested blob does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Blob not found: {name}")
        self.name = name


@dataclass(frozen=True, slots=True)
class AccessPermissions:
    """Permissions granted by a temporary-access URL."""

    read: bool = True
    write: bool = False

    def to_flags(self) -> str:
        return ("r" if self.read else "") + ("w" if self.write else "")


READ_ONLY = AccessPermissions(read=True)


class BlobStore(Protocol):
    """Key/blob namespace bound to one execution.

    Names are ``/``-separated keys relative to the namespace root. Writes
    overwrite, so repeating a write with the same content is harmless.
    """

    namespace: str

    def ensure_namespace(self) -> bool:
        """Create the namespace if absent. Returns ``True`` when created."""

    def delete_namespace(self) -> bool:
        """Delete the namespace and its blobs. Returns ``False`` when absent."""

    def put_text(self, name: str, content: str) -> None:
        """Create or overwrite ``name`` with UTF-8 encoded ``content``."""

    def get_text(self, name: str) -> str:
        """Read ``name`` as UTF-8; raise ``BlobNotFoundError`` if missing."""

    def exists(self, name: str) -> bool:
        """Return whether ``name`` exists."""

    def iter_name_pages(self, prefix: str) -> Iterator[list[str]]:
        """Yield pages of blob names starting with ``prefix`` until exhausted."""

    def temporary_access_url(
        self,
        name: str,
        permissions: AccessPermissions,
        expiry: timedelta,
    ) -> str:
        """Return a URL granting ``permissions`` on ``name`` for ``expiry``."""


def list_names(store: BlobStore, prefix: str) -> list[str]:
    """Flatten every listing page under ``prefix``."""

    names: list[str] = []
    for page in store.iter_name_pages(prefix):
        names.extend(page)
    return names
