"""Task scheduler interface and an in-process implementation."""

from __future__ import annotations

import logging
import random
import shutil
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

import httpx

from chunk_relay.config import NAMESPACE_ENV, StorageSettings, WorkerSettings
from chunk_relay.coordinator.models import TaskSpec, TaskState, TaskView
from chunk_relay.storage import open_blob_store
from chunk_relay.worker.processor import ChunkHandler
from chunk_relay.worker.runner import ChunkWorker, fetch_input_from_url

logger = logging.getLogger(__name__)

UNLIMITED_RETRIES = -1
_MAX_BACKOFF_EXPONENT = 16

TaskRunner = Callable[[TaskSpec, Path], None]


class TaskWaitTimeoutError(TimeoutError):
    """Tasks of a job did not reach the terminal state in time."""

    def __init__(self, job_id: str, pending: Sequence[str], timeout_seconds: float) -> None:
        super().__init__(
            f"{len(pending)} tasks of job {job_id} did not complete "
            f"within {timeout_seconds:.0f}s",
        )
        self.job_id = job_id
        self.pending = list(pending)


class JobNotFoundError(KeyError):
    """Unknown job id."""


class TaskScheduler(Protocol):
    """Remote-execution surface the coordinator relies on."""

    def create_job(self, job_id: str) -> None: ...

    def add_tasks(self, job_id: str, tasks: Sequence[TaskSpec]) -> None: ...

    def list_tasks(self, job_id: str) -> list[TaskView]: ...

    def wait_for_all_tasks(
        self,
        job_id: str,
        terminal_state: TaskState,
        timeout_seconds: float,
    ) -> None: ...

    def terminate_job(self, job_id: str) -> None: ...

    def delete_job(self, job_id: str) -> bool: ...


class WorkerTaskRunner:
    """Runs one worker invocation for a task, as a compute node would.

    The input is staged into the task workdir through the task's access URL,
    and scratch output goes to ``<workdir>/output``. Worker failures propagate
    to the scheduler.
    """

    def __init__(
        self,
        *,
        storage_settings: StorageSettings,
        worker_settings: WorkerSettings,
        handler: ChunkHandler | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.storage_settings = storage_settings
        self.worker_settings = worker_settings
        self.handler = handler
        self.http_transport = http_transport

    def __call__(self, task: TaskSpec, workdir: Path) -> None:
        namespace = task.environment.get(NAMESPACE_ENV, self.worker_settings.namespace)
        input_path = fetch_input_from_url(
            task.input_url,
            task.input_name,
            workdir,
            timeout_seconds=self.storage_settings.request_timeout_seconds,
            transport=self.http_transport,
        )
        store = open_blob_store(self.storage_settings, namespace)
        settings = replace(
            self.worker_settings,
            namespace=namespace,
            output_dir=workdir / "output",
        )

        def _emit(line: str) -> None:
            logger.debug("[%s] %s", task.task_id, line)

        ChunkWorker(store=store, settings=settings, handler=self.handler, emit=_emit).run(
            input_path,
        )


@dataclass(slots=True)
class _LocalJob:
    job_id: str
    executor: ThreadPoolExecutor
    tasks: dict[str, TaskView] = field(default_factory=dict)
    cancelled: threading.Event = field(default_factory=threading.Event)


class LocalTaskScheduler:
    """Runs tasks on a local thread pool, re-running failed tasks.

    A failed invocation is retried up to ``max_task_retries`` times
    (``-1`` retries without limit) after a jittered exponential backoff; the
    task completes either way, with the exit code of its last attempt.
    A terminated job stops retrying and never starts queued tasks.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        task_runner: TaskRunner,
        workdir_root: Path,
        max_task_retries: int = 3,
        max_parallel_tasks: int = 4,
        retry_base_seconds: float = 1.0,
        retry_max_seconds: float = 30.0,
    ) -> None:
        self.task_runner = task_runner
        self.workdir_root = workdir_root
        self.max_task_retries = max_task_retries
        self.max_parallel_tasks = max_parallel_tasks
        self.retry_base_seconds = retry_base_seconds
        self.retry_max_seconds = retry_max_seconds
        self._random = random.Random()  # noqa: S311
        self._jobs: dict[str, _LocalJob] = {}
        self._changed = threading.Condition()

    def create_job(self, job_id: str) -> None:
        with self._changed:
            if job_id in self._jobs:
                raise ValueError(f"Job already exists: {job_id}")
            self._jobs[job_id] = _LocalJob(
                job_id=job_id,
                executor=ThreadPoolExecutor(
                    max_workers=self.max_parallel_tasks,
                    thread_name_prefix=f"task-{job_id[:8]}",
                ),
            )
        logger.info("Created job %s", job_id)

    def add_tasks(self, job_id: str, tasks: Sequence[TaskSpec]) -> None:
        job = self._job(job_id)
        views: list[TaskView] = []
        with self._changed:
            for spec in tasks:
                if spec.task_id in job.tasks:
                    raise ValueError(f"Task already exists in job {job_id}: {spec.task_id}")
                view = TaskView(spec=spec)
                job.tasks[spec.task_id] = view
                views.append(view)
        for view in views:
            job.executor.submit(self._execute, job, view)
        logger.info("Added %d tasks to job %s", len(views), job_id)

    def list_tasks(self, job_id: str) -> list[TaskView]:
        job = self._job(job_id)
        with self._changed:
            return [replace(view) for view in job.tasks.values()]

    def wait_for_all_tasks(
        self,
        job_id: str,
        terminal_state: TaskState,
        timeout_seconds: float,
    ) -> None:
        job = self._job(job_id)

        def _all_terminal() -> bool:
            return all(view.state is terminal_state for view in job.tasks.values())

        with self._changed:
            if not self._changed.wait_for(_all_terminal, timeout=timeout_seconds):
                pending = [
                    task_id
                    for task_id, view in job.tasks.items()
                    if view.state is not terminal_state
                ]
                raise TaskWaitTimeoutError(job_id, pending, timeout_seconds)

    def terminate_job(self, job_id: str) -> None:
        """Stop retries and drop queued tasks; a running attempt finishes on its own."""

        job = self._job(job_id)
        self._cancel(job)
        with self._changed:
            for view in job.tasks.values():
                if view.state is TaskState.ACTIVE:
                    view.state = TaskState.COMPLETED
                    view.error = "terminated before start"
            self._changed.notify_all()
        logger.info("Terminated job %s", job_id)

    def delete_job(self, job_id: str) -> bool:
        with self._changed:
            job = self._jobs.pop(job_id, None)
        if job is not None:
            self._cancel(job)
        # workdirs outlive the process that created the job
        shutil.rmtree(self.workdir_root / job_id, ignore_errors=True)
        if job is None:
            return False
        logger.info("Deleted job %s", job_id)
        return True

    def _cancel(self, job: _LocalJob) -> None:
        job.cancelled.set()
        job.executor.shutdown(wait=False, cancel_futures=True)

    def _job(self, job_id: str) -> _LocalJob:
        with self._changed:
            try:
                return self._jobs[job_id]
            except KeyError as error:
                raise JobNotFoundError(job_id) from error

    def _execute(self, job: _LocalJob, view: TaskView) -> None:
        workdir = self.workdir_root / job.job_id / view.spec.task_id
        while not job.cancelled.is_set():
            with self._changed:
                view.state = TaskState.RUNNING
                view.attempts += 1
                self._changed.notify_all()
            try:
                self.task_runner(view.spec, workdir)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Task %s attempt %d failed: %s",
                    view.spec.task_id,
                    view.attempts,
                    exc,
                )
                with self._changed:
                    view.exit_code = 1
                    view.error = str(exc)
                if not self._may_retry(view):
                    break
                # wakes early when the job is terminated
                job.cancelled.wait(self._compute_retry_delay(retry_number=view.attempts))
                continue
            with self._changed:
                view.exit_code = 0
                view.error = None
            break
        with self._changed:
            view.state = TaskState.COMPLETED
            self._changed.notify_all()

    def _may_retry(self, view: TaskView) -> bool:
        if self.max_task_retries == UNLIMITED_RETRIES:
            return True
        return view.attempts - 1 < self.max_task_retries

    def _compute_retry_delay(self, *, retry_number: int) -> float:
        max_delay = min(
            self.retry_max_seconds,
            self.retry_base_seconds * (2 ** min(max(retry_number - 1, 0), _MAX_BACKOFF_EXPONENT)),
        )
        return self._random.uniform(0, max_delay)
