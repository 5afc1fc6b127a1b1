"""Shared test fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from prefect.testing.utilities import prefect_test_harness

from chunk_relay.config import StorageSettings, WorkerSettings
from chunk_relay.storage import LocalBlobStore
from chunk_relay.worker.models import Chunk

NAMESPACE = "exec-test"


class RecordingHandler:
    """Chunk handler that echoes content and records which indexes it saw."""

    def __init__(self, fail_on: Callable[[Chunk], bool] = lambda _: False) -> None:
        self.fail_on = fail_on
        self.calls: list[int] = []
        self._lock = threading.Lock()

    def __call__(self, chunk: Chunk) -> str:
        with self._lock:
            self.calls.append(chunk.index)
        if self.fail_on(chunk):
            raise RuntimeError(f"boom on chunk {chunk.index}")
        return chunk.content


@pytest.fixture()
def storage_settings(tmp_path: Path) -> StorageSettings:
    return StorageSettings(backend="local", root=tmp_path / "storage", listing_page_size=3)


@pytest.fixture()
def store(storage_settings: StorageSettings) -> LocalBlobStore:
    blob_store = LocalBlobStore(
        storage_settings.root,
        NAMESPACE,
        page_size=storage_settings.listing_page_size,
    )
    blob_store.ensure_namespace()
    return blob_store


@pytest.fixture()
def worker_settings(tmp_path: Path) -> WorkerSettings:
    return WorkerSettings(
        namespace=NAMESPACE,
        output_dir=tmp_path / "output",
        chunk_delay_seconds=0.0,
        max_workers=4,
        line_separator="\n",
    )


@pytest.fixture()
def write_input(tmp_path: Path) -> Callable[[str, str], Path]:
    inputs_dir = tmp_path / "inputs"
    inputs_dir.mkdir()

    def _write(name: str, content: str) -> Path:
        path = inputs_dir / f"{name}.txt"
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        return path

    return _write


@pytest.fixture()
def handler_factory() -> type[RecordingHandler]:
    return RecordingHandler


@pytest.fixture(scope="session")
def prefect_harness() -> Iterator[None]:
    """Temporary Prefect API so flows run without a configured server."""

    with prefect_test_harness():
        yield
