"""Controllers for worker CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from chunk_relay.config import Settings
from chunk_relay.storage import open_blob_store
from chunk_relay.worker.models import WorkerRunSummary
from chunk_relay.worker.runner import ChunkWorker, fetch_input


@dataclass(slots=True)
class WorkerRunCommand:
    """CLI input for one worker invocation."""

    input_path: Path
    namespace: str | None = None
    output_dir: Path | None = None
    chunk_delay_seconds: float | None = None
    max_workers: int | None = None


@dataclass(slots=True)
class WorkerStatusCommand:
    """CLI input for remaining-work inspection."""

    input_path: Path
    namespace: str | None = None


@dataclass(slots=True)
class WorkerFetchCommand:
    """CLI input for staging an input from storage."""

    input_name: str
    destination_dir: Path
    namespace: str | None = None


class WorkerCliController:
    """Builds settings and storage at the CLI boundary and runs the worker."""

    def run(self, command: WorkerRunCommand, emit: Callable[[str], None]) -> list[str]:
        settings = _worker_settings(command.namespace)
        worker_settings = settings.worker
        if command.output_dir is not None:
            worker_settings = replace(worker_settings, output_dir=command.output_dir)
        if command.chunk_delay_seconds is not None:
            worker_settings = replace(
                worker_settings,
                chunk_delay_seconds=command.chunk_delay_seconds,
            )
        if command.max_workers is not None:
            worker_settings = replace(worker_settings, max_workers=command.max_workers)
        settings = replace(settings, worker=worker_settings)
        settings.validate_for_worker()

        store = open_blob_store(settings.storage, worker_settings.namespace)
        worker = ChunkWorker(store=store, settings=worker_settings, emit=emit)
        summary = worker.run(command.input_path)
        return [_summary_line(summary)]

    def status(self, command: WorkerStatusCommand) -> list[str]:
        settings = _worker_settings(command.namespace)
        settings.validate_for_worker()
        store = open_blob_store(settings.storage, settings.worker.namespace)
        worker = ChunkWorker(store=store, settings=settings.worker)
        summary, remaining = worker.plan(command.input_path)
        lines = [
            f"Input: {summary.input_name} namespace={settings.worker.namespace}",
            f"Total Number of Chunks: {summary.total_chunks}",
            f"Number of Processed Chunks: {summary.already_processed}",
            f"Remaining Chunks to Process: {summary.remaining}",
        ]
        if remaining:
            preview = ", ".join(str(index) for index in sorted(remaining)[:20])
            suffix = ", ..." if len(remaining) > 20 else ""
            lines.append(f"Remaining indexes: {preview}{suffix}")
        return lines

    def fetch(self, command: WorkerFetchCommand) -> list[str]:
        settings = _worker_settings(command.namespace)
        settings.validate_for_storage()
        store = open_blob_store(settings.storage, settings.worker.namespace)
        path = fetch_input(store, command.input_name, command.destination_dir)
        return [f"Input staged: {path}"]


def _worker_settings(namespace: str | None) -> Settings:
    return Settings.from_env(namespace=namespace)


def _summary_line(summary: WorkerRunSummary) -> str:
    return (
        "Worker summary: "
        f"input={summary.input_name} total={summary.total_chunks} "
        f"already_processed={summary.already_processed} remaining={summary.remaining} "
        f"succeeded={summary.succeeded} failed={summary.failed}"
    )
