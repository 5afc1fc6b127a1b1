"""Concurrent processing of remaining chunks with per-chunk completion markers."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path

from chunk_relay.storage.base import BlobStore
from chunk_relay.storage.layout import BLOB_SUFFIX, marker_blob_name
from chunk_relay.worker.models import Chunk, ChunkOutcome, ChunkState

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[Chunk], str]

_DEFAULT_MAX_WORKERS = 32


class ChunkProcessingError(RuntimeError):
    """One or more chunks failed; markers of the other chunks were kept."""

    def __init__(self, input_name: str, outcomes: list[ChunkOutcome]) -> None:
        self.input_name = input_name
        self.outcomes = outcomes
        self.failed_indexes = [o.index for o in outcomes if o.state is ChunkState.FAILED]
        self.succeeded = sum(1 for o in outcomes if o.state is ChunkState.DONE)
        shown = ", ".join(str(index) for index in self.failed_indexes[:20])
        if len(self.failed_indexes) > 20:
            shown += ", ..."
        super().__init__(
            f"{len(self.failed_indexes)} of {len(outcomes)} chunks of {input_name} "
            f"failed: [{shown}]",
        )


class DelayedEchoHandler:
    """Reference chunk work: wait a fixed delay and return the content unchanged."""

    def __init__(self, delay_seconds: float = 1.0) -> None:
        self.delay_seconds = delay_seconds

    def __call__(self, chunk: Chunk) -> str:
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)
        return chunk.content


class ChunkProcessor:
    """Fans remaining chunks out onto a thread pool and waits for all of them.

    ``states`` follows every chunk of the latest ``process`` call from
    ``pending`` through ``in_flight`` to ``done`` or ``failed``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: BlobStore,
        input_name: str,
        output_dir: Path,
        handler: ChunkHandler,
        max_workers: int | None = None,
        emit: Callable[[str], None] = lambda _: None,
    ) -> None:
        self.store = store
        self.input_name = input_name
        self.output_dir = output_dir
        self.handler = handler
        self.max_workers = max_workers
        self.emit = emit
        self.states: dict[int, ChunkState] = {}

    def process(self, remaining: Mapping[int, str]) -> list[ChunkOutcome]:
        """Process every chunk in ``remaining``; raise if any of them failed."""

        self.states = dict.fromkeys(remaining, ChunkState.PENDING)
        if not remaining:
            return []
        self.output_dir.mkdir(parents=True, exist_ok=True)
        max_workers = self.max_workers or min(_DEFAULT_MAX_WORKERS, len(remaining))
        outcomes: list[ChunkOutcome] = []
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chunk") as executor:
            futures: dict[Future[None], int] = {
                executor.submit(self.process_chunk, Chunk(index=index, content=content)): index
                for index, content in remaining.items()
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    future.result()
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Chunk %d of %s failed", index, self.input_name)
                    self.states[index] = ChunkState.FAILED
                    outcomes.append(ChunkOutcome(index=index, state=ChunkState.FAILED, error=exc))
                else:
                    self.states[index] = ChunkState.DONE
                    outcomes.append(ChunkOutcome(index=index, state=ChunkState.DONE))

        outcomes.sort(key=lambda outcome: outcome.index)
        failures = [outcome for outcome in outcomes if outcome.state is ChunkState.FAILED]
        if failures:
            raise ChunkProcessingError(self.input_name, outcomes) from failures[0].error
        return outcomes

    def process_chunk(self, chunk: Chunk) -> None:
        """Run the handler, then record the completion marker.

        Safe to repeat: both the scratch file and the marker are overwritten.
        """

        self.states[chunk.index] = ChunkState.IN_FLIGHT
        self.emit(f"Starting to process chunk: {chunk.index}")
        payload = self.handler(chunk)
        self._write_scratch(chunk.index, payload)
        self.store.put_text(marker_blob_name(self.input_name, chunk.index), payload)
        self.emit(f"Finished processing chunk: {chunk.index}")

    def _write_scratch(self, index: int, payload: str) -> None:
        path = self.output_dir / f"{index}{BLOB_SUFFIX}"
        try:
            path.write_text(payload, encoding="utf-8", newline="")
        except OSError as exc:
            # scratch output is advisory, the marker is the record of completion
            logger.warning("Failed to write scratch output %s: %s", path, exc)
