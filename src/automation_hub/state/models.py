"""Domain models for the persisted hub execution state."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

STATE_SCHEMA_VERSION = "1.0"
RUN_STATUS_RUNNING = "running"


@dataclass(slots=True)
class CurrentRun:
    """In-flight marker for a task that has started but not completed."""

    started_at: str
    status: str = RUN_STATUS_RUNNING


@dataclass(slots=True)
class TaskState:
    """Per-task counters and run markers."""

    today_count: int = 0
    today_date: str = ""
    total_runs: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_run: str | None = None
    last_success: str | None = None
    last_error: str | None = None
    current_run: CurrentRun | None = None
    retry_count: int = 0

    @classmethod
    def fresh(cls, today: date) -> TaskState:
        """Zero-valued state for a task seen for the first time."""

        return cls(today_date=today.isoformat())

    @property
    def is_running(self) -> bool:
        return self.current_run is not None and self.current_run.status == RUN_STATUS_RUNNING

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, today: date) -> TaskState:
        current_raw = raw.get("current_run")
        current_run = None
        if isinstance(current_raw, dict) and current_raw.get("started_at"):
            current_run = CurrentRun(
                started_at=str(current_raw["started_at"]),
                status=str(current_raw.get("status", RUN_STATUS_RUNNING)),
            )
        return cls(
            today_count=int(raw.get("today_count", 0) or 0),
            today_date=str(raw.get("today_date") or today.isoformat()),
            total_runs=int(raw.get("total_runs", 0) or 0),
            success_count=int(raw.get("success_count", 0) or 0),
            failure_count=int(raw.get("failure_count", 0) or 0),
            last_run=_optional_str(raw.get("last_run")),
            last_success=_optional_str(raw.get("last_success")),
            last_error=_optional_str(raw.get("last_error")),
            current_run=current_run,
            retry_count=int(raw.get("retry_count", 0) or 0),
        )


@dataclass(slots=True)
class GlobalStats:
    """Hub-wide run counters; total_runs == total_success + total_failure."""

    total_runs: int = 0
    total_success: int = 0
    total_failure: int = 0


@dataclass(slots=True)
class HubState:
    """Root document shared by the orchestrator and the overseer."""

    version: str = STATE_SCHEMA_VERSION
    revision: int = 0
    last_run: str | None = None
    last_updated: str | None = None
    tasks: dict[str, TaskState] = field(default_factory=dict)
    global_stats: GlobalStats = field(default_factory=GlobalStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "revision": self.revision,
            "last_run": self.last_run,
            "last_updated": self.last_updated,
            "tasks": {name: task.to_dict() for name, task in self.tasks.items()},
            "global_stats": asdict(self.global_stats),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, today: date) -> HubState:
        """Merge a persisted document over the defaults."""

        raw_tasks = raw.get("tasks")
        if not isinstance(raw_tasks, dict):
            raw_tasks = {}
        raw_global = raw.get("global_stats")
        if not isinstance(raw_global, dict):
            raw_global = {}
        defaults = GlobalStats()
        return cls(
            version=str(raw.get("version") or STATE_SCHEMA_VERSION),
            revision=int(raw.get("revision", 0) or 0),
            last_run=_optional_str(raw.get("last_run")),
            last_updated=_optional_str(raw.get("last_updated")),
            tasks={
                str(name): TaskState.from_dict(task_raw, today=today)
                for name, task_raw in raw_tasks.items()
                if isinstance(task_raw, dict)
            },
            global_stats=GlobalStats(
                total_runs=int(raw_global.get("total_runs", defaults.total_runs)),
                total_success=int(raw_global.get("total_success", defaults.total_success)),
                total_failure=int(raw_global.get("total_failure", defaults.total_failure)),
            ),
        )

    def replace_with(self, other: HubState) -> None:
        """Refresh this handle in place from another snapshot."""

        self.version = other.version
        self.revision = other.revision
        self.last_run = other.last_run
        self.last_updated = other.last_updated
        self.tasks = other.tasks
        self.global_stats = other.global_stats


@dataclass(slots=True)
class TaskResult:
    """Completion details recorded with a finished run."""

    output: str | None = None
    url: str | None = None
    error: str | None = None
    duration_ms: int | None = None


@dataclass(slots=True)
class HistoryEntry:
    """One executed run in the append-only history."""

    task: str
    timestamp: str
    success: bool
    output: str | None = None
    url: str | None = None
    error: str | None = None
    duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "task": self.task,
            "timestamp": self.timestamp,
            "success": self.success,
        }
        for key in ("output", "url", "error", "duration_ms"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> HistoryEntry:
        duration = raw.get("duration_ms")
        return cls(
            task=str(raw.get("task", "")),
            timestamp=str(raw.get("timestamp", "")),
            success=bool(raw.get("success", False)),
            output=_optional_str(raw.get("output")),
            url=_optional_str(raw.get("url")),
            error=_optional_str(raw.get("error")),
            duration_ms=int(duration) if isinstance(duration, (int, float)) else None,
        )


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
