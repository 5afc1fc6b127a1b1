"""Prefect flow running one execution end to end.

prepare -> submit -> wait -> collect -> (cleanup). Each step is a Prefect
task; the worker invocations themselves run on the task scheduler.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from prefect import flow, task
from prefect.cache_policies import NONE

from chunk_relay.coordinator.models import ExecutionInput, ExecutionReport
from chunk_relay.coordinator.scheduler import TaskWaitTimeoutError
from chunk_relay.coordinator.service import CoordinatorService

logger = logging.getLogger(__name__)


@task(name="prepare_inputs", cache_policy=NONE)
def prepare_inputs(
    service: CoordinatorService,
    execution_id: str,
    inputs: list[ExecutionInput],
) -> list[str]:
    return service.prepare(execution_id, inputs)


@task(name="submit_tasks", cache_policy=NONE)
def submit_tasks(service: CoordinatorService, execution_id: str, input_names: list[str]) -> int:
    return len(service.submit(execution_id, input_names))


@task(name="wait_for_tasks", cache_policy=NONE)
def wait_for_tasks(service: CoordinatorService, execution_id: str, timeout_seconds: float) -> None:
    service.wait(execution_id, timeout_seconds)


@task(name="collect_report", cache_policy=NONE)
def collect_report(
    service: CoordinatorService,
    execution_id: str,
    input_names: list[str],
    expected_chunks: int,
) -> ExecutionReport:
    return service.collect(execution_id, input_names, expected_chunks=expected_chunks)


@flow(name="chunk_relay_execution", validate_parameters=False)
def execution_flow(  # noqa: PLR0913
    *,
    service: CoordinatorService,
    input_count: int,
    lines_per_input: int,
    timeout_seconds: float,
    cleanup: bool = False,
    execution_id: str | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> ExecutionReport:
    """Stage ``input_count`` generated inputs, run them as tasks and report markers."""

    emit = on_progress or (lambda _: None)
    execution_id = execution_id or service.new_execution_id()
    started = time.monotonic()
    emit("Starting")
    emit(f"ExecutionId: {execution_id}")
    emit(f"Number of Files to Process: {input_count}")

    inputs = service.generate_inputs(input_count, lines_per_input)
    input_names = prepare_inputs(service, execution_id, inputs)
    submit_tasks(service, execution_id, input_names)
    try:
        wait_for_tasks(service, execution_id, timeout_seconds)
    except TaskWaitTimeoutError:
        if cleanup:
            service.cleanup(execution_id)
        raise
    report = collect_report(service, execution_id, input_names, lines_per_input)

    if cleanup:
        service.cleanup(execution_id)
        report.cleaned_up = True
    logger.info("Execution %s finished in %.1fs", execution_id, time.monotonic() - started)
    return report
