"""Filesystem-backed blob store for local runs and tests."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

from chunk_relay.storage.base import AccessPermissions, BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)

_PARTIAL_SUFFIX = ".partial"


class LocalBlobStore:
    """Maps a namespace onto ``<root>/<namespace>/`` and blob names onto files."""

    def __init__(self, root: Path, namespace: str, *, page_size: int = 5_000) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.root = root.expanduser().resolve()
        self.namespace = namespace
        self.page_size = page_size
        self._base_dir = self._namespace_dir()

    def ensure_namespace(self) -> bool:
        if self._base_dir.is_dir():
            return False
        self._base_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Created namespace %s at %s", self.namespace, self._base_dir)
        return True

    def delete_namespace(self) -> bool:
        if not self._base_dir.is_dir():
            return False
        shutil.rmtree(self._base_dir)
        logger.info("Deleted namespace %s", self.namespace)
        return True

    def put_text(self, name: str, content: str) -> None:
        destination = self._path_for(name)
        self._require_namespace()
        destination.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8")
        # rename is atomic, so concurrent writers of one blob never interleave
        handle = tempfile.NamedTemporaryFile(
            mode="wb",
            dir=destination.parent,
            prefix=f".{destination.name}.",
            suffix=_PARTIAL_SUFFIX,
            delete=False,
        )
        staged = Path(handle.name)
        try:
            with handle:
                handle.write(data)
            os.replace(staged, destination)
        except OSError as error:
            staged.unlink(missing_ok=True)
            raise StorageError(f"Failed to write blob {name}") from error

    def get_text(self, name: str) -> str:
        path = self._path_for(name)
        try:
            return path.read_bytes().decode("utf-8")
        except FileNotFoundError as error:
            raise BlobNotFoundError(name) from error

    def exists(self, name: str) -> bool:
        return self._path_for(name).is_file()

    def iter_name_pages(self, prefix: str) -> Iterator[list[str]]:
        self._require_namespace()
        names = sorted(name for name in self._iter_names() if name.startswith(prefix))
        for start in range(0, len(names), self.page_size):
            yield names[start : start + self.page_size]

    def temporary_access_url(
        self,
        name: str,
        permissions: AccessPermissions,
        expiry: timedelta,
    ) -> str:
        # local files carry no access policy; permissions and expiry are not enforced
        del permissions, expiry
        return self._path_for(name).as_uri()

    def _iter_names(self) -> Iterator[str]:
        for root, _, files in os.walk(self._base_dir):
            root_path = Path(root)
            for file_name in files:
                if file_name.endswith(_PARTIAL_SUFFIX):
                    continue
                yield (root_path / file_name).relative_to(self._base_dir).as_posix()

    def _namespace_dir(self) -> Path:
        candidate = (self.root / self.namespace).resolve()
        if candidate == self.root or not candidate.is_relative_to(self.root):
            raise ValueError(f"Unsafe namespace name: {self.namespace!r}")
        return candidate

    def _path_for(self, name: str) -> Path:
        relative = name.lstrip("/")
        candidate = (self._base_dir / relative).resolve()
        if candidate == self._base_dir or not candidate.is_relative_to(self._base_dir):
            raise ValueError(f"Unsafe blob name: {name!r}")
        return candidate

    def _require_namespace(self) -> None:
        if not self._base_dir.is_dir():
            raise StorageError(f"Namespace does not exist: {self.namespace}")
