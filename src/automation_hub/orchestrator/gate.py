"""Admission control applied to every task before it starts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from automation_hub.orchestrator.registry import TaskConfig
from automation_hub.state.models import HubState, TaskState
from automation_hub.storage import from_iso

DEFAULT_DAILY_LIMIT = 999
DEFAULT_COOLDOWN_MINUTES = 60
DEFAULT_MAX_RETRIES = 2


@dataclass(slots=True, frozen=True)
class AdmissionDecision:
    can_run: bool
    reason: str


def can_task_run(
    state: HubState,
    task_name: str,
    config: TaskConfig,
    *,
    now: datetime,
) -> AdmissionDecision:
    """Decide whether ``task_name`` may start at ``now``.

    Rules are evaluated in priority order and the first failing one names the
    limit that blocked the run. The state document is never written.
    """

    task_state = state.tasks.get(task_name) or TaskState.fresh(now.date())

    daily_limit = _or_default(config.daily_limit, DEFAULT_DAILY_LIMIT)
    if task_state.today_count >= daily_limit:
        return AdmissionDecision(
            False,
            f"Daily limit reached ({task_state.today_count}/{daily_limit})",
        )

    cooldown = timedelta(minutes=_or_default(config.cooldown_minutes, DEFAULT_COOLDOWN_MINUTES))
    if task_state.last_run:
        elapsed = now - from_iso(task_state.last_run)
        if elapsed < cooldown:
            minutes_ago = round(elapsed.total_seconds() / 60)
            return AdmissionDecision(False, f"Cooldown: last run {minutes_ago}m ago")

    max_retries = _or_default(config.max_retries, DEFAULT_MAX_RETRIES)
    if task_state.retry_count >= max_retries:
        return AdmissionDecision(
            False,
            f"Max retries exceeded ({task_state.retry_count}/{max_retries})",
        )

    if task_state.current_run is not None:
        return AdmissionDecision(False, "Task already running")

    return AdmissionDecision(True, "Ready")


def _or_default(value: float | None, default: int) -> float:
    return default if value is None else value
