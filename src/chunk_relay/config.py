"""Runtime configuration for storage, worker and coordinator."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

STORAGE_BACKENDS: tuple[str, ...] = ("azure", "local")
DEFAULT_NAMESPACE = "test"
DEFAULT_INPUT_PATH = Path("sample-input.txt")
NAMESPACE_ENV = "CHUNK_RELAY_NAMESPACE"

_LINE_SEPARATORS = {
    "native": os.linesep,
    "lf": "\n",
    "crlf": "\r\n",
}


class ConfigurationError(ValueError):
    """Required configuration is missing or invalid."""


@dataclass(slots=True)
class StorageSettings:
    """Blob storage connection settings."""

    backend: str = "local"
    root: Path | None = Path(".chunk_relay_storage")
    account_url: str | None = None
    connection_string: str | None = None
    listing_page_size: int = 5_000
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class WorkerSettings:
    """Settings of one worker invocation."""

    namespace: str = DEFAULT_NAMESPACE
    output_dir: Path = Path("output")
    chunk_delay_seconds: float = 1.0
    max_workers: int | None = None
    line_separator: str = os.linesep


@dataclass(slots=True)
class CoordinatorSettings:
    """Settings of the execution coordinator and the local task scheduler."""

    input_count: int = 10
    lines_per_input: int = 1_000
    wait_timeout_seconds: float = 1_800.0
    max_task_retries: int = 3
    task_workdir: Path = Path(".chunk_relay_tasks")
    access_expiry_hours: int = 24
    max_parallel_tasks: int = 4
    retry_base_seconds: float = 1.0
    retry_max_seconds: float = 30.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    storage: StorageSettings = field(default_factory=StorageSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    coordinator: CoordinatorSettings = field(default_factory=CoordinatorSettings)

    @classmethod
    def from_env(cls, namespace: str | None = None) -> Settings:
        """Load settings from environment with defaults for local runs."""

        max_workers = _env_int("CHUNK_RELAY_MAX_WORKERS", 0)
        return cls(
            storage=StorageSettings(
                backend=os.getenv("CHUNK_RELAY_STORAGE_BACKEND", "local").strip().lower(),
                root=_env_path("CHUNK_RELAY_STORAGE_ROOT", ".chunk_relay_storage"),
                account_url=os.getenv("CHUNK_RELAY_AZURE_ACCOUNT_URL") or None,
                connection_string=os.getenv("CHUNK_RELAY_AZURE_CONNECTION_STRING") or None,
                listing_page_size=_env_int("CHUNK_RELAY_LISTING_PAGE_SIZE", 5_000),
                request_timeout_seconds=_env_float("CHUNK_RELAY_REQUEST_TIMEOUT_SECONDS", 30.0),
            ),
            worker=WorkerSettings(
                namespace=namespace or os.getenv(NAMESPACE_ENV) or DEFAULT_NAMESPACE,
                output_dir=Path(os.getenv("CHUNK_RELAY_OUTPUT_DIR", "output")),
                chunk_delay_seconds=_env_float("CHUNK_RELAY_CHUNK_DELAY_SECONDS", 1.0),
                max_workers=max_workers or None,
                line_separator=parse_line_separator(
                    os.getenv("CHUNK_RELAY_LINE_SEPARATOR", "native"),
                ),
            ),
            coordinator=CoordinatorSettings(
                input_count=_env_int("CHUNK_RELAY_INPUT_COUNT", 10),
                lines_per_input=_env_int("CHUNK_RELAY_LINES_PER_INPUT", 1_000),
                wait_timeout_seconds=_env_float("CHUNK_RELAY_WAIT_TIMEOUT_SECONDS", 1_800.0),
                max_task_retries=_env_int("CHUNK_RELAY_MAX_TASK_RETRIES", 3),
                task_workdir=Path(os.getenv("CHUNK_RELAY_TASK_WORKDIR", ".chunk_relay_tasks")),
                access_expiry_hours=_env_int("CHUNK_RELAY_ACCESS_EXPIRY_HOURS", 24),
                max_parallel_tasks=_env_int("CHUNK_RELAY_MAX_PARALLEL_TASKS", 4),
                retry_base_seconds=_env_float("CHUNK_RELAY_RETRY_BASE_SECONDS", 1.0),
                retry_max_seconds=_env_float("CHUNK_RELAY_RETRY_MAX_SECONDS", 30.0),
            ),
        )

    def validate_for_storage(self) -> None:
        """Raise configuration error if the storage backend cannot be reached."""

        storage = self.storage
        if storage.backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unsupported CHUNK_RELAY_STORAGE_BACKEND: {storage.backend!r}. "
                f"Expected one of: {', '.join(STORAGE_BACKENDS)}.",
            )
        if storage.backend == "azure" and not (storage.account_url or storage.connection_string):
            raise ConfigurationError(
                "Azure storage requires CHUNK_RELAY_AZURE_ACCOUNT_URL "
                "or CHUNK_RELAY_AZURE_CONNECTION_STRING.",
            )
        if storage.backend == "local" and storage.root is None:
            raise ConfigurationError("Local storage requires CHUNK_RELAY_STORAGE_ROOT.")
        if storage.listing_page_size <= 0:
            raise ConfigurationError("CHUNK_RELAY_LISTING_PAGE_SIZE must be > 0.")
        if storage.request_timeout_seconds <= 0:
            raise ConfigurationError("CHUNK_RELAY_REQUEST_TIMEOUT_SECONDS must be > 0.")

    def validate_for_worker(self) -> None:
        """Raise configuration error before any chunk work starts."""

        self.validate_for_storage()
        if not self.worker.namespace.strip():
            raise ConfigurationError("CHUNK_RELAY_NAMESPACE must not be blank.")
        if self.worker.chunk_delay_seconds < 0:
            raise ConfigurationError("CHUNK_RELAY_CHUNK_DELAY_SECONDS must be >= 0.")
        if self.worker.max_workers is not None and self.worker.max_workers <= 0:
            raise ConfigurationError("CHUNK_RELAY_MAX_WORKERS must be > 0.")
        if not self.worker.line_separator:
            raise ConfigurationError("Line separator must not be empty.")

    def validate_for_coordinator(self) -> None:
        """Raise configuration error before an execution is created."""

        self.validate_for_worker()
        coordinator = self.coordinator
        if coordinator.input_count <= 0:
            raise ConfigurationError("CHUNK_RELAY_INPUT_COUNT must be > 0.")
        if coordinator.lines_per_input <= 0:
            raise ConfigurationError("CHUNK_RELAY_LINES_PER_INPUT must be > 0.")
        if coordinator.wait_timeout_seconds <= 0:
            raise ConfigurationError("CHUNK_RELAY_WAIT_TIMEOUT_SECONDS must be > 0.")
        if coordinator.max_task_retries < -1:
            raise ConfigurationError(
                "CHUNK_RELAY_MAX_TASK_RETRIES must be >= 0, or -1 for unlimited retries.",
            )
        if coordinator.access_expiry_hours <= 0:
            raise ConfigurationError("CHUNK_RELAY_ACCESS_EXPIRY_HOURS must be > 0.")
        if coordinator.max_parallel_tasks <= 0:
            raise ConfigurationError("CHUNK_RELAY_MAX_PARALLEL_TASKS must be > 0.")
        if coordinator.retry_base_seconds < 0 or coordinator.retry_max_seconds < 0:
            raise ConfigurationError(
                "CHUNK_RELAY_RETRY_BASE_SECONDS and CHUNK_RELAY_RETRY_MAX_SECONDS must be >= 0.",
            )


def parse_line_separator(value: str) -> str:
    """Map a separator name (``native``, ``lf``, ``crlf``) to its characters."""

    normalized = value.strip().lower()
    try:
        return _LINE_SEPARATORS[normalized]
    except KeyError as error:
        raise ConfigurationError(
            f"Invalid CHUNK_RELAY_LINE_SEPARATOR: {value!r}. "
            f"Expected one of: {', '.join(_LINE_SEPARATORS)}.",
        ) from error


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid numeric value for {name}: {value!r}") from error


def _env_path(name: str, default: str) -> Path | None:
    """Unset falls back to ``default``; set but blank means no path."""

    value = os.getenv(name, default).strip()
    return Path(value) if value else None
