"""Use-case service for one execution of the batch job."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from datetime import timedelta
from uuid import uuid4

from chunk_relay.config import NAMESPACE_ENV, CoordinatorSettings
from chunk_relay.coordinator.models import (
    ExecutionInput,
    ExecutionReport,
    InputProgress,
    TaskSpec,
    TaskState,
)
from chunk_relay.coordinator.scheduler import TaskScheduler, TaskWaitTimeoutError
from chunk_relay.storage import READ_ONLY, BlobStore
from chunk_relay.storage.layout import input_blob_name
from chunk_relay.worker.markers import discover_processed_indexes

logger = logging.getLogger(__name__)

BlobStoreFactory = Callable[[str], BlobStore]


class CoordinatorService:
    """Coordinates input staging, task submission, waiting and cleanup."""

    def __init__(
        self,
        *,
        store_factory: BlobStoreFactory,
        scheduler: TaskScheduler,
        settings: CoordinatorSettings,
        line_separator: str = os.linesep,
        emit: Callable[[str], None] = lambda _: None,
    ) -> None:
        self.store_factory = store_factory
        self.scheduler = scheduler
        self.settings = settings
        self.line_separator = line_separator
        self.emit = emit

    @staticmethod
    def new_execution_id() -> str:
        return str(uuid4())

    def generate_inputs(self, count: int, lines_per_input: int) -> list[ExecutionInput]:
        """Build ``count`` inputs holding the numbers ``1..lines_per_input``."""

        content = self.line_separator.join(str(line) for line in range(1, lines_per_input + 1))
        return [ExecutionInput(name=str(uuid4()), content=content) for _ in range(count)]

    def prepare(self, execution_id: str, inputs: Sequence[ExecutionInput]) -> list[str]:
        """Create the namespace if needed and upload every input."""

        store = self.store_factory(execution_id)
        store.ensure_namespace()
        for execution_input in inputs:
            blob_name = input_blob_name(execution_input.name)
            store.put_text(blob_name, execution_input.content)
            self.emit(f"Uploaded File: {blob_name}")
        return [execution_input.name for execution_input in inputs]

    def submit(self, execution_id: str, input_names: Sequence[str]) -> list[TaskSpec]:
        """Create the job and one task per input."""

        store = self.store_factory(execution_id)
        expiry = timedelta(hours=self.settings.access_expiry_hours)
        tasks = [
            TaskSpec(
                task_id=input_name,
                input_name=input_name,
                input_url=store.temporary_access_url(
                    input_blob_name(input_name),
                    READ_ONLY,
                    expiry,
                ),
                environment={NAMESPACE_ENV: execution_id},
            )
            for input_name in input_names
        ]
        self.scheduler.create_job(execution_id)
        self.scheduler.add_tasks(execution_id, tasks)
        self.emit("Job and Tasks created.")
        return tasks

    def wait(self, execution_id: str, timeout_seconds: float | None = None) -> None:
        """Block until every task completed.

        On timeout the job is terminated, so no retries outlive the wait, and
        ``TaskWaitTimeoutError`` propagates.
        """

        if timeout_seconds is None:
            timeout_seconds = self.settings.wait_timeout_seconds
        self.emit("Waiting for Tasks to complete...")
        try:
            self.scheduler.wait_for_all_tasks(execution_id, TaskState.COMPLETED, timeout_seconds)
        except TaskWaitTimeoutError:
            self.scheduler.terminate_job(execution_id)
            self.emit("Tasks did not complete in time, job terminated.")
            raise
        self.emit("Tasks Completed.")

    def collect(
        self,
        execution_id: str,
        input_names: Sequence[str],
        *,
        expected_chunks: int | None = None,
    ) -> ExecutionReport:
        """Count completion markers per input and snapshot task states."""

        store = self.store_factory(execution_id)
        report = ExecutionReport(execution_id=execution_id)
        for input_name in input_names:
            markers = discover_processed_indexes(store, input_name)
            report.inputs.append(
                InputProgress(
                    input_name=input_name,
                    markers=len(markers),
                    expected=expected_chunks,
                ),
            )
        report.tasks = self.scheduler.list_tasks(execution_id)
        for task in report.failed_tasks:
            logger.warning(
                "Task %s finished with exit_code=%s after %d attempts: %s",
                task.spec.task_id,
                task.exit_code,
                task.attempts,
                task.error,
            )
        return report

    def cleanup(self, execution_id: str) -> None:
        """Delete the job and the execution namespace."""

        self.emit("Cleaning up resources...")
        self.scheduler.delete_job(execution_id)
        self.store_factory(execution_id).delete_namespace()
