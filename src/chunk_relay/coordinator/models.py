"""Domain models for executions and scheduled worker tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TaskState(str, Enum):
    """Scheduler-side task lifecycle."""

    ACTIVE = "active"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class ExecutionInput:
    """One named input of an execution."""

    name: str
    content: str


@dataclass(frozen=True, slots=True)
class TaskSpec:
    """What a scheduler needs to run one worker invocation."""

    task_id: str
    input_name: str
    input_url: str
    environment: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class TaskView:
    """Observed state of a scheduled task."""

    spec: TaskSpec
    state: TaskState = TaskState.ACTIVE
    attempts: int = 0
    exit_code: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is TaskState.COMPLETED and self.exit_code == 0


@dataclass(slots=True)
class InputProgress:
    """Marker count of one input after the tasks finished."""

    input_name: str
    markers: int
    expected: int | None = None


@dataclass(slots=True)
class ExecutionReport:
    """Outcome of one execution for CLI reporting."""

    execution_id: str
    inputs: list[InputProgress] = field(default_factory=list)
    tasks: list[TaskView] = field(default_factory=list)
    cleaned_up: bool = False

    @property
    def failed_tasks(self) -> list[TaskView]:
        return [task for task in self.tasks if not task.succeeded]
