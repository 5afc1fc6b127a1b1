from __future__ import annotations

import threading
import time
from pathlib import Path

import allure
import pytest

from chunk_relay.coordinator.models import TaskSpec, TaskState
from chunk_relay.coordinator.scheduler import (
    JobNotFoundError,
    LocalTaskScheduler,
    TaskRunner,
    TaskWaitTimeoutError,
)

pytestmark = [
    allure.epic("Coordinator"),
    allure.feature("Local Task Scheduler"),
]


def _spec(task_id: str) -> TaskSpec:
    return TaskSpec(task_id=task_id, input_name=task_id, input_url=f"file:///{task_id}.txt")


def _scheduler(tmp_path: Path, runner: TaskRunner, **kwargs) -> LocalTaskScheduler:
    kwargs.setdefault("retry_base_seconds", 0)
    kwargs.setdefault("retry_max_seconds", 0)
    return LocalTaskScheduler(task_runner=runner, workdir_root=tmp_path, **kwargs)


class _FailingTimes:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, task: TaskSpec, workdir: Path) -> None:
        with self._lock:
            self.calls.append(task.task_id)
            attempt = self.calls.count(task.task_id)
        if attempt <= self.failures:
            raise RuntimeError(f"attempt {attempt} failed")


def test_all_tasks_complete(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path, _FailingTimes(failures=0))
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a"), _spec("b"), _spec("c")])

    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=10)

    tasks = scheduler.list_tasks("job-1")
    assert sorted(task.spec.task_id for task in tasks) == ["a", "b", "c"]
    assert all(task.succeeded and task.attempts == 1 for task in tasks)


def test_failed_task_is_retried_until_it_succeeds(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path, _FailingTimes(failures=2), max_task_retries=2)
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a")])

    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=10)

    [task] = scheduler.list_tasks("job-1")
    assert task.attempts == 3
    assert task.exit_code == 0
    assert task.error is None


def test_exhausted_retries_complete_with_failure(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path, _FailingTimes(failures=5), max_task_retries=1)
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a")])

    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=10)

    [task] = scheduler.list_tasks("job-1")
    assert task.state is TaskState.COMPLETED
    assert task.attempts == 2
    assert task.exit_code == 1
    assert not task.succeeded
    assert "attempt 2 failed" in (task.error or "")


def test_unlimited_retries(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path, _FailingTimes(failures=6), max_task_retries=-1)
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a")])

    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=10)

    assert scheduler.list_tasks("job-1")[0].attempts == 7


def test_retry_delay_grows_exponentially_up_to_cap(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    scheduler = _scheduler(
        tmp_path,
        _FailingTimes(0),
        retry_base_seconds=0.5,
        retry_max_seconds=3,
    )
    monkeypatch.setattr(scheduler._random, "uniform", lambda low, high: high)

    delays = [scheduler._compute_retry_delay(retry_number=number) for number in range(1, 6)]

    assert delays == [0.5, 1.0, 2.0, 3, 3]
    assert scheduler._compute_retry_delay(retry_number=100_000) == 3


def test_wait_times_out_on_stuck_task(tmp_path: Path) -> None:
    release = threading.Event()

    def _blocking(task: TaskSpec, workdir: Path) -> None:
        release.wait(timeout=10)

    scheduler = _scheduler(tmp_path, _blocking)
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("stuck")])

    try:
        with pytest.raises(TaskWaitTimeoutError) as excinfo:
            scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=0.2)
        assert excinfo.value.pending == ["stuck"]
    finally:
        release.set()
    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=10)


def test_terminate_stops_unlimited_retries(tmp_path: Path) -> None:
    runner = _FailingTimes(failures=10**9)
    scheduler = _scheduler(
        tmp_path,
        runner,
        max_task_retries=-1,
        retry_base_seconds=0.01,
        retry_max_seconds=0.01,
    )
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a")])
    with pytest.raises(TaskWaitTimeoutError):
        scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=0.2)

    scheduler.terminate_job("job-1")

    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=5)
    attempts = len(runner.calls)
    time.sleep(0.1)
    assert len(runner.calls) == attempts
    [task] = scheduler.list_tasks("job-1")
    assert task.exit_code == 1


def test_terminate_drops_queued_tasks(tmp_path: Path) -> None:
    release = threading.Event()
    started = threading.Event()

    def _blocking(task: TaskSpec, workdir: Path) -> None:
        started.set()
        release.wait(timeout=10)

    scheduler = _scheduler(tmp_path, _blocking, max_parallel_tasks=1)
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("first"), _spec("queued")])
    assert started.wait(timeout=5)

    scheduler.terminate_job("job-1")
    release.set()

    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=5)
    tasks = {task.spec.task_id: task for task in scheduler.list_tasks("job-1")}
    assert tasks["first"].succeeded
    assert tasks["queued"].attempts == 0
    assert tasks["queued"].error == "terminated before start"
    assert not tasks["queued"].succeeded


def test_job_ids_and_task_ids_are_unique(tmp_path: Path) -> None:
    scheduler = _scheduler(tmp_path, _FailingTimes(0))
    scheduler.create_job("job-1")

    with pytest.raises(ValueError, match="Job already exists"):
        scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a")])
    with pytest.raises(ValueError, match="Task already exists"):
        scheduler.add_tasks("job-1", [_spec("a")])


def test_delete_job_removes_workdir(tmp_path: Path) -> None:
    def _touch(task: TaskSpec, workdir: Path) -> None:
        workdir.mkdir(parents=True, exist_ok=True)
        (workdir / "marker").write_text("x")

    scheduler = _scheduler(tmp_path, _touch)
    scheduler.create_job("job-1")
    scheduler.add_tasks("job-1", [_spec("a")])
    scheduler.wait_for_all_tasks("job-1", TaskState.COMPLETED, timeout_seconds=10)
    assert (tmp_path / "job-1" / "a" / "marker").exists()

    assert scheduler.delete_job("job-1") is True
    assert not (tmp_path / "job-1").exists()
    assert scheduler.delete_job("job-1") is False
    with pytest.raises(JobNotFoundError):
        scheduler.list_tasks("job-1")
