"""Domain models for the overseer monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class OverseerStatus(str, Enum):
    """Lifecycle of the overseer process."""

    STARTING = "starting"
    RUNNING = "running"
    ISSUES_DETECTED = "issues_detected"
    HEALTHY = "healthy"
    STOPPED = "stopped"


class LogEntryType(str, Enum):
    CHECK = "check"
    ALERT = "alert"
    ACTION = "action"
    ERROR = "error"
    INFO = "info"


class IssueType(str, Enum):
    """Problems a health check can report."""

    STUCK_TASK = "stuck_task"
    MISSED_SCHEDULE = "missed_schedule"
    STALE_REVIEW = "stale_review"
    LARGE_REVIEW_QUEUE = "large_review_queue"
    NO_RECENT_ACTIVITY = "no_recent_activity"
    HIGH_FAILURE_RATE = "high_failure_rate"


class ActionType(str, Enum):
    """Corrective steps the overseer performs on its own."""

    RESET_STUCK_TASK = "reset_stuck_task"
    DATA_OPTIMIZATION = "data_optimization"


@dataclass(slots=True)
class HealthIssue:
    type: IssueType
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "message": self.message, **self.details}


@dataclass(slots=True)
class RecoveryAction:
    action: ActionType
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action.value, "message": self.message, **self.details}


@dataclass(slots=True)
class CheckResult:
    """Issues and actions produced by one check."""

    issues: list[HealthIssue] = field(default_factory=list)
    actions: list[RecoveryAction] = field(default_factory=list)


@dataclass(slots=True)
class HealthSummary:
    status: str
    enabled_tasks: int
    running_tasks: list[str]
    pending_reviews: int
    success_rate: int
    recent_runs: int
    last_activity: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "enabled_tasks": self.enabled_tasks,
            "running_tasks": list(self.running_tasks),
            "pending_reviews": self.pending_reviews,
            "success_rate": self.success_rate,
            "recent_runs": self.recent_runs,
            "last_activity": self.last_activity,
        }


@dataclass(slots=True)
class OverseerState:
    """Persisted snapshot of the overseer, rewritten after every cycle."""

    status: OverseerStatus = OverseerStatus.STARTING
    started_at: str | None = None
    last_check: str | None = None
    checks_performed: int = 0
    current_issues: list[dict[str, Any]] = field(default_factory=list)
    recent_actions: list[dict[str, Any]] = field(default_factory=list)
    health_summary: dict[str, Any] | None = None
    auto_recovery_enabled: bool = True
    last_optimization: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "started_at": self.started_at,
            "last_check": self.last_check,
            "checks_performed": self.checks_performed,
            "current_issues": list(self.current_issues),
            "recent_actions": list(self.recent_actions),
            "health_summary": self.health_summary,
            "auto_recovery_enabled": self.auto_recovery_enabled,
            "last_optimization": self.last_optimization,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> OverseerState:
        try:
            status = OverseerStatus(raw.get("status", OverseerStatus.STARTING.value))
        except ValueError:
            status = OverseerStatus.STARTING
        return cls(
            status=status,
            started_at=raw.get("started_at"),
            last_check=raw.get("last_check"),
            checks_performed=int(raw.get("checks_performed", 0) or 0),
            current_issues=list(raw.get("current_issues") or []),
            recent_actions=list(raw.get("recent_actions") or []),
            health_summary=raw.get("health_summary"),
            auto_recovery_enabled=bool(raw.get("auto_recovery_enabled", True)),
            last_optimization=raw.get("last_optimization"),
        )
