"""Worker entry point: reconcile one input against storage and process the rest."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import httpx

from chunk_relay.config import WorkerSettings
from chunk_relay.storage.access import download_access_url, redact_access_url
from chunk_relay.storage.base import BlobStore
from chunk_relay.storage.layout import input_blob_name
from chunk_relay.worker.chunking import input_name_for, read_input_text, split_into_chunks
from chunk_relay.worker.markers import discover_processed_indexes
from chunk_relay.worker.models import Chunk, WorkerRunSummary
from chunk_relay.worker.processor import (
    ChunkHandler,
    ChunkProcessingError,
    ChunkProcessor,
    DelayedEchoHandler,
)
from chunk_relay.worker.reconcile import remaining_chunks

logger = logging.getLogger(__name__)


class ChunkWorker:
    """Processes the chunks of one input that have no completion marker yet."""

    def __init__(
        self,
        *,
        store: BlobStore,
        settings: WorkerSettings,
        handler: ChunkHandler | None = None,
        emit: Callable[[str], None] = lambda _: None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.handler = handler or DelayedEchoHandler(settings.chunk_delay_seconds)
        self.emit = emit

    def plan(self, input_path: Path) -> tuple[WorkerRunSummary, dict[int, str]]:
        """Split the input and subtract discovered markers, without processing."""

        input_name = input_name_for(input_path)
        chunks = self._load_chunks(input_path)
        processed = discover_processed_indexes(self.store, input_name)
        remaining = remaining_chunks(chunks, processed)
        summary = WorkerRunSummary(
            input_name=input_name,
            total_chunks=len(chunks),
            already_processed=len(chunks) - len(remaining),
            remaining=len(remaining),
        )
        return summary, remaining

    def run(self, input_path: Path) -> WorkerRunSummary:
        """Process every remaining chunk of ``input_path``.

        Raises ``ChunkProcessingError`` after all chunks finished if any failed.
        """

        self.emit("Starting")
        self.store.ensure_namespace()
        self.emit(f"Input File: {input_path.name}")
        summary, remaining = self.plan(input_path)
        self.emit(f"Total Number of Chunks: {summary.total_chunks}")
        self.emit(f"Number of Processed Chunks: {summary.already_processed}")
        self.emit(f"Remaining Chunks to Process: {summary.remaining}")
        logger.info(
            "Input %s: total=%d processed=%d remaining=%d",
            summary.input_name,
            summary.total_chunks,
            summary.already_processed,
            summary.remaining,
        )

        processor = ChunkProcessor(
            store=self.store,
            input_name=summary.input_name,
            output_dir=self.settings.output_dir,
            handler=self.handler,
            max_workers=self.settings.max_workers,
            emit=self.emit,
        )
        try:
            outcomes = processor.process(remaining)
        except ChunkProcessingError as error:
            summary.succeeded = error.succeeded
            summary.failed = len(error.failed_indexes)
            summary.failed_indexes = error.failed_indexes
            logger.error("Input %s: %s", summary.input_name, error)
            raise

        summary.succeeded = len(outcomes)
        self.emit("All remaining work complete.")
        return summary

    def _load_chunks(self, input_path: Path) -> list[Chunk]:
        return split_into_chunks(read_input_text(input_path), self.settings.line_separator)


def fetch_input(store: BlobStore, input_name: str, destination_dir: Path) -> Path:
    """Stage ``input-files/<name>.txt`` from storage into ``destination_dir``."""

    destination_dir.mkdir(parents=True, exist_ok=True)
    destination = destination_dir / f"{input_name}.txt"
    content = store.get_text(input_blob_name(input_name))
    with destination.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)
    logger.info("Staged input %s to %s", input_name, destination)
    return destination


def fetch_input_from_url(
    url: str,
    input_name: str,
    destination_dir: Path,
    *,
    timeout_seconds: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> Path:
    """Stage an input through its temporary-access URL, byte for byte."""

    destination_dir.mkdir(parents=True, exist_ok=True)
    destination = destination_dir / f"{input_name}.txt"
    destination.write_bytes(
        download_access_url(url, timeout_seconds=timeout_seconds, transport=transport),
    )
    logger.info("Staged input %s from %s", input_name, redact_access_url(url))
    return destination
