"""Controllers for execution CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

from chunk_relay.config import Settings
from chunk_relay.coordinator.flow import execution_flow
from chunk_relay.coordinator.models import ExecutionReport
from chunk_relay.coordinator.scheduler import LocalTaskScheduler, WorkerTaskRunner
from chunk_relay.coordinator.service import CoordinatorService
from chunk_relay.storage import open_blob_store


@dataclass(slots=True)
class ExecutionRunCommand:
    """CLI input for a full execution."""

    input_count: int | None
    lines_per_input: int | None
    timeout_minutes: float | None
    cleanup: bool


@dataclass(slots=True)
class ExecutionCleanupCommand:
    """CLI input for execution teardown."""

    execution_id: str


@dataclass(slots=True)
class ExecutionRunResult:
    """Execution report rendered for CLI."""

    execution_id: str
    lines: list[str]
    success: bool


class CoordinatorCliController:
    """Wires settings, storage and the local scheduler into the execution flow."""

    def run(self, command: ExecutionRunCommand, emit: Callable[[str], None]) -> ExecutionRunResult:
        settings = Settings.from_env()
        coordinator = settings.coordinator
        if command.input_count is not None:
            coordinator = replace(coordinator, input_count=command.input_count)
        if command.lines_per_input is not None:
            coordinator = replace(coordinator, lines_per_input=command.lines_per_input)
        if command.timeout_minutes is not None:
            coordinator = replace(coordinator, wait_timeout_seconds=command.timeout_minutes * 60)
        settings = replace(settings, coordinator=coordinator)
        settings.validate_for_coordinator()

        service = _service(settings, emit)
        execution_id = service.new_execution_id()
        report = execution_flow(
            service=service,
            input_count=coordinator.input_count,
            lines_per_input=coordinator.lines_per_input,
            timeout_seconds=coordinator.wait_timeout_seconds,
            cleanup=command.cleanup,
            execution_id=execution_id,
            on_progress=emit,
        )
        return ExecutionRunResult(
            execution_id=execution_id,
            lines=render_report_lines(report),
            success=not report.failed_tasks,
        )

    def cleanup(self, command: ExecutionCleanupCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate_for_storage()
        service = _service(settings, lambda _: None)
        service.cleanup(command.execution_id)
        return [f"Execution cleaned up: {command.execution_id}"]


def render_report_lines(report: ExecutionReport) -> list[str]:
    lines = [f"Execution: {report.execution_id}"]
    for progress in report.inputs:
        expected = f"/{progress.expected}" if progress.expected is not None else ""
        lines.append(f"  {progress.input_name}: markers={progress.markers}{expected}")
    failed = report.failed_tasks
    lines.append(f"Tasks: total={len(report.tasks)} failed={len(failed)}")
    lines.extend(
        f"  failed task {task.spec.task_id}: attempts={task.attempts} error={task.error}"
        for task in failed
    )
    if report.cleaned_up:
        lines.append("Job and namespace deleted.")
    lines.append("Finished")
    return lines


def _service(settings: Settings, emit: Callable[[str], None]) -> CoordinatorService:
    scheduler = LocalTaskScheduler(
        task_runner=WorkerTaskRunner(
            storage_settings=settings.storage,
            worker_settings=settings.worker,
        ),
        workdir_root=settings.coordinator.task_workdir,
        max_task_retries=settings.coordinator.max_task_retries,
        max_parallel_tasks=settings.coordinator.max_parallel_tasks,
        retry_base_seconds=settings.coordinator.retry_base_seconds,
        retry_max_seconds=settings.coordinator.retry_max_seconds,
    )
    return CoordinatorService(
        store_factory=lambda namespace: open_blob_store(settings.storage, namespace),
        scheduler=scheduler,
        settings=settings.coordinator,
        line_separator=settings.worker.line_separator,
        emit=emit,
    )
