"""CLI entrypoint for chunk-relay."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from chunk_relay import __version__
from chunk_relay.config import DEFAULT_INPUT_PATH, ConfigurationError
from chunk_relay.coordinator.controllers import (
    CoordinatorCliController,
    ExecutionCleanupCommand,
    ExecutionRunCommand,
)
from chunk_relay.coordinator.scheduler import TaskWaitTimeoutError
from chunk_relay.storage import StorageError
from chunk_relay.worker.controllers import (
    WorkerCliController,
    WorkerFetchCommand,
    WorkerRunCommand,
    WorkerStatusCommand,
)
from chunk_relay.worker.markers import MarkerDiscoveryError
from chunk_relay.worker.processor import ChunkProcessingError

click.rich_click.USE_MARKDOWN = True
WORKER_CONTROLLER = WorkerCliController()
COORDINATOR_CONTROLLER = CoordinatorCliController()

_FAILURES = (
    ConfigurationError,
    StorageError,
    MarkerDiscoveryError,
    ChunkProcessingError,
    TaskWaitTimeoutError,
    FileNotFoundError,
)


@click.group()
@click.version_option(version=__version__, prog_name="chunk-relay")
def chunk_relay() -> None:
    """Resumable chunk processing over blob storage."""


@chunk_relay.group()
def worker() -> None:
    """Worker commands (one invocation per input)."""


@worker.command("run")
@click.argument(
    "input_path",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_INPUT_PATH,
)
@click.option(
    "--namespace",
    default=None,
    help="Storage namespace (execution id). Defaults to CHUNK_RELAY_NAMESPACE or `test`.",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Local scratch directory for chunk outputs.",
)
@click.option(
    "--chunk-delay",
    "chunk_delay_seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Simulated work per chunk in seconds.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Thread pool size for concurrent chunks.",
)
def worker_run(
    input_path: Path,
    namespace: str | None,
    output_dir: Path | None,
    chunk_delay_seconds: float | None,
    max_workers: int | None,
) -> None:
    """Process every chunk of INPUT_PATH that has no completion marker yet."""

    with _cli_failures():
        lines = WORKER_CONTROLLER.run(
            WorkerRunCommand(
                input_path=input_path,
                namespace=namespace,
                output_dir=output_dir,
                chunk_delay_seconds=chunk_delay_seconds,
                max_workers=max_workers,
            ),
            emit=click.echo,
        )
    _emit_lines(lines)


@worker.command("status")
@click.argument(
    "input_path",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_INPUT_PATH,
)
@click.option("--namespace", default=None, help="Storage namespace (execution id).")
def worker_status(input_path: Path, namespace: str | None) -> None:
    """Show processed and remaining chunk counts without processing."""

    with _cli_failures():
        lines = WORKER_CONTROLLER.status(
            WorkerStatusCommand(input_path=input_path, namespace=namespace),
        )
    _emit_lines(lines)


@worker.command("fetch")
@click.argument("input_name")
@click.option(
    "--dest",
    "destination_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory to stage the input file into.",
)
@click.option("--namespace", default=None, help="Storage namespace (execution id).")
def worker_fetch(input_name: str, destination_dir: Path, namespace: str | None) -> None:
    """Download input INPUT_NAME from storage to a local file."""

    with _cli_failures():
        lines = WORKER_CONTROLLER.fetch(
            WorkerFetchCommand(
                input_name=input_name,
                destination_dir=destination_dir,
                namespace=namespace,
            ),
        )
    _emit_lines(lines)


@chunk_relay.group()
def execution() -> None:
    """Coordinator commands (stage inputs, run tasks, clean up)."""


@execution.command("run")
@click.option(
    "--inputs",
    "input_count",
    type=click.IntRange(min=1),
    default=None,
    help="Number of generated inputs. Defaults to CHUNK_RELAY_INPUT_COUNT or 10.",
)
@click.option(
    "--lines",
    "lines_per_input",
    type=click.IntRange(min=1),
    default=None,
    help="Lines per generated input. Defaults to CHUNK_RELAY_LINES_PER_INPUT or 1000.",
)
@click.option(
    "--timeout-minutes",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Wall-clock ceiling for all tasks. Defaults to 30 minutes.",
)
@click.option(
    "--cleanup/--keep",
    default=None,
    help="Delete job and namespace afterwards. Asks when omitted.",
)
def execution_run(
    input_count: int | None,
    lines_per_input: int | None,
    timeout_minutes: float | None,
    cleanup: bool | None,
) -> None:
    """Run one execution end to end on the local task scheduler."""

    with _cli_failures():
        result = COORDINATOR_CONTROLLER.run(
            ExecutionRunCommand(
                input_count=input_count,
                lines_per_input=lines_per_input,
                timeout_minutes=timeout_minutes,
                cleanup=bool(cleanup),
            ),
            emit=click.echo,
        )
    _emit_lines(result.lines)
    if cleanup is None and click.confirm("Delete job and namespace?", default=True):
        with _cli_failures():
            _emit_lines(
                COORDINATOR_CONTROLLER.cleanup(
                    ExecutionCleanupCommand(execution_id=result.execution_id),
                ),
            )
    if not result.success:
        raise click.ClickException("Some tasks failed.")


@execution.command("cleanup")
@click.argument("execution_id")
def execution_cleanup(execution_id: str) -> None:
    """Delete the job workdirs and the storage namespace of EXECUTION_ID."""

    with _cli_failures():
        lines = COORDINATOR_CONTROLLER.cleanup(ExecutionCleanupCommand(execution_id=execution_id))
    _emit_lines(lines)


@contextmanager
def _cli_failures() -> Iterator[None]:
    try:
        yield
    except _FAILURES as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    chunk_relay()
