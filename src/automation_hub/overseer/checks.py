"""Individual health checks run by the overseer on every cycle.

Each check is a plain function over already-loaded inputs and an explicit
``now``, so the monitor can isolate failures per check and tests can drive
the thresholds without sleeping.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from automation_hub.config import OverseerSettings
from automation_hub.orchestrator.registry import TaskRegistry
from automation_hub.overseer.models import (
    ActionType,
    CheckResult,
    HealthIssue,
    HealthSummary,
    IssueType,
    RecoveryAction,
)
from automation_hub.state.models import HistoryEntry, HubState
from automation_hub.storage import from_iso

logger = logging.getLogger(__name__)

ResetStuckTask = Callable[[str, str], bool]

_HOUR = timedelta(hours=1)
_MINUTE = timedelta(minutes=1)


def check_stuck_tasks(
    state: HubState,
    *,
    now: datetime,
    settings: OverseerSettings,
    reset_task: ResetStuckTask,
) -> CheckResult:
    """Report in-flight markers older than the alert threshold.

    Past the reset threshold, with auto recovery enabled, the marker is
    cleared through ``reset_task(name, started_at)`` and reported as an
    action instead of an issue. A failed reset falls back to an issue.
    """

    result = CheckResult()
    alert_after = timedelta(minutes=settings.stuck_task_minutes)
    reset_after = timedelta(minutes=settings.stuck_task_reset_minutes)
    for name, task_state in state.tasks.items():
        if not task_state.is_running or task_state.current_run is None:
            continue
        started_at = task_state.current_run.started_at
        running_for = now - from_iso(started_at)
        if running_for <= alert_after:
            continue
        minutes = round(running_for / _MINUTE)

        if (
            settings.auto_recovery_enabled
            and running_for > reset_after
            and reset_task(name, started_at)
        ):
            result.actions.append(
                RecoveryAction(
                    action=ActionType.RESET_STUCK_TASK,
                    message=f"Auto-reset stuck task: {name}",
                    details={"task": name, "running_minutes": minutes},
                ),
            )
            continue

        result.issues.append(
            HealthIssue(
                type=IssueType.STUCK_TASK,
                message=f'Task "{name}" appears stuck',
                details={
                    "task": name,
                    "running_minutes": minutes,
                    "started_at": started_at,
                    "threshold_minutes": settings.stuck_task_minutes,
                    "can_auto_fix": settings.auto_recovery_enabled,
                },
            ),
        )
    return result


def check_missed_schedules(
    state: HubState,
    registry: TaskRegistry,
    *,
    now: datetime,
    settings: OverseerSettings,
) -> CheckResult:
    result = CheckResult()
    grace = timedelta(hours=settings.missed_schedule_grace_hours)
    for config in registry.enabled():
        task_state = state.tasks.get(config.name)
        if task_state is None or not task_state.last_run:
            continue
        cooldown_hours = (
            settings.default_cooldown_hours
            if config.cooldown_hours is None
            else config.cooldown_hours
        )
        expected_next_run = from_iso(task_state.last_run) + timedelta(hours=cooldown_hours)
        if now <= expected_next_run + grace:
            continue
        hours_overdue = round((now - expected_next_run) / _HOUR)
        result.issues.append(
            HealthIssue(
                type=IssueType.MISSED_SCHEDULE,
                message=f'Task "{config.name}" may have missed its schedule',
                details={
                    "task": config.name,
                    "hours_overdue": hours_overdue,
                    "last_run": task_state.last_run,
                },
            ),
        )
    return result


def check_review_queue(
    pending: list[dict[str, Any]],
    *,
    now: datetime,
    settings: OverseerSettings,
) -> CheckResult:
    result = CheckResult()
    for review in pending:
        created_at = review.get("created_at")
        if not created_at:
            continue
        try:
            age_hours = (now - from_iso(str(created_at))) / _HOUR
        except ValueError:
            logger.warning(
                "Skipping review %s with bad created_at %r",
                review.get("id"),
                created_at,
            )
            continue
        if age_hours <= settings.review_alert_hours:
            continue
        title = review.get("title", "")
        result.issues.append(
            HealthIssue(
                type=IssueType.STALE_REVIEW,
                message=f'Review "{title}" has been pending for {round(age_hours)} hours',
                details={
                    "review_id": review.get("id"),
                    "title": title,
                    "age_hours": round(age_hours, 1),
                },
            ),
        )

    if len(pending) >= settings.large_review_queue:
        result.issues.append(
            HealthIssue(
                type=IssueType.LARGE_REVIEW_QUEUE,
                message=f"Review queue has {len(pending)} pending items",
                details={"count": len(pending)},
            ),
        )
    return result


def check_system_health(
    history: list[HistoryEntry],
    *,
    now: datetime,
    settings: OverseerSettings,
) -> CheckResult:
    """Flag inactivity and a high recent failure rate.

    ``history`` is most-recent-first.
    """

    result = CheckResult()
    if history:
        last_activity = history[0].timestamp
        idle_hours = (now - from_iso(last_activity)) / _HOUR
        if idle_hours > settings.no_activity_hours:
            result.issues.append(
                HealthIssue(
                    type=IssueType.NO_RECENT_ACTIVITY,
                    message=f"No task activity in {round(idle_hours)} hours",
                    details={
                        "hours_since_activity": round(idle_hours),
                        "last_activity": last_activity,
                    },
                ),
            )

    recent = history[: settings.failure_rate_window]
    if len(recent) >= settings.failure_rate_min_sample:
        failures = sum(1 for entry in recent if not entry.success)
        failure_rate = failures / len(recent)
        if failure_rate > settings.failure_rate_threshold:
            result.issues.append(
                HealthIssue(
                    type=IssueType.HIGH_FAILURE_RATE,
                    message=(
                        f"High failure rate: {round(failure_rate * 100)}% of recent runs failed"
                    ),
                    details={
                        "failure_rate": round(failure_rate * 100),
                        "recent_failures": failures,
                        "recent_total": len(recent),
                    },
                ),
            )
    return result


def build_health_summary(
    state: HubState,
    registry: TaskRegistry,
    history: list[HistoryEntry],
    *,
    pending_reviews: int,
    settings: OverseerSettings,
) -> HealthSummary:
    running = [name for name, task_state in state.tasks.items() if task_state.is_running]
    recent = history[: settings.health_summary_window]
    successes = sum(1 for entry in recent if entry.success)
    success_rate = round(successes / len(recent) * 100) if recent else 100
    return HealthSummary(
        status="active" if running else "idle",
        enabled_tasks=len(registry.enabled()),
        running_tasks=running,
        pending_reviews=pending_reviews,
        success_rate=success_rate,
        recent_runs=len(recent),
        last_activity=history[0].timestamp if history else None,
    )
