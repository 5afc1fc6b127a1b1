"""Domain models for chunk reconciliation and processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ChunkState(str, Enum):
    """Lifecycle of one chunk inside a single invocation."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Chunk:
    """One line of an input, identified by its zero-based position."""

    index: int
    content: str


@dataclass(slots=True)
class ChunkOutcome:
    """Result of processing one chunk."""

    index: int
    state: ChunkState
    error: BaseException | None = None


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate counters for one worker invocation."""

    input_name: str
    total_chunks: int = 0
    already_processed: int = 0
    remaining: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_indexes: list[int] = field(default_factory=list)
