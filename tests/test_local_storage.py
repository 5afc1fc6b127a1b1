from __future__ import annotations

import tempfile
from datetime import timedelta
from pathlib import Path

import allure
import pytest

from chunk_relay.storage import (
    READ_ONLY,
    BlobNotFoundError,
    LocalBlobStore,
    StorageError,
    list_names,
)

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Local Blob Store"),
]


def test_namespace_lifecycle(tmp_path: Path) -> None:
    store = LocalBlobStore(tmp_path, "exec-1")

    assert store.ensure_namespace() is True
    assert store.ensure_namespace() is False
    store.put_text("a.txt", "x")
    assert store.delete_namespace() is True
    assert store.delete_namespace() is False
    assert not (tmp_path / "exec-1").exists()


def test_put_overwrites_and_get_reads_back(store: LocalBlobStore) -> None:
    store.put_text("output-files/in/0.txt", "first")
    store.put_text("output-files/in/0.txt", "second")

    assert store.get_text("output-files/in/0.txt") == "second"
    assert store.exists("output-files/in/0.txt")
    assert list_names(store, "output-files/") == ["output-files/in/0.txt"]


def test_missing_blob_raises_not_found(store: LocalBlobStore) -> None:
    assert not store.exists("nope.txt")
    with pytest.raises(BlobNotFoundError, match="nope.txt"):
        store.get_text("nope.txt")


def test_write_without_namespace_fails(tmp_path: Path) -> None:
    store = LocalBlobStore(tmp_path, "missing")

    with pytest.raises(StorageError, match="Namespace does not exist"):
        store.put_text("a.txt", "x")
    with pytest.raises(StorageError):
        list(store.iter_name_pages(""))


def test_listing_pages_and_skips_partial_files(store: LocalBlobStore) -> None:
    for index in range(7):
        store.put_text(f"p/{index}.txt", str(index))
    (store.root / store.namespace / "p" / ".5.txt.abc.partial").write_text("half")

    pages = list(store.iter_name_pages("p/"))

    assert [len(page) for page in pages] == [3, 3, 1]
    assert sorted(name for page in pages for name in page) == [f"p/{i}.txt" for i in range(7)]


@pytest.mark.parametrize("name", ["../escape.txt", "/../../etc/passwd", ""])
def test_unsafe_blob_names_are_rejected(store: LocalBlobStore, name: str) -> None:
    with pytest.raises(ValueError, match="Unsafe blob name"):
        store.put_text(name, "x")


def test_unsafe_namespace_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unsafe namespace"):
        LocalBlobStore(tmp_path, "../outside")


def test_temporary_access_url_points_to_file(store: LocalBlobStore) -> None:
    store.put_text("input-files/in.txt", "x")

    url = store.temporary_access_url("input-files/in.txt", READ_ONLY, timedelta(hours=1))

    assert url.startswith("file://")
    assert url.endswith("/input-files/in.txt")


def test_failed_write_leaves_no_partial_file(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = LocalBlobStore(tmp_path, "exec-1")
    store.ensure_namespace()
    real_named_temporary_file = tempfile.NamedTemporaryFile

    class _FullDisk:
        def __init__(self, **kwargs) -> None:
            self._handle = real_named_temporary_file(**kwargs)
            self.name = self._handle.name

        def write(self, data: bytes) -> int:
            raise OSError(28, "No space left on device")

        def __enter__(self) -> _FullDisk:
            return self

        def __exit__(self, *exc_info) -> None:
            self._handle.close()

    monkeypatch.setattr(tempfile, "NamedTemporaryFile", _FullDisk)

    with pytest.raises(StorageError, match="Failed to write blob"):
        store.put_text("output-files/in/0.txt", "a")

    assert [path for path in (tmp_path / "exec-1").rglob("*") if path.is_file()] == []
