from __future__ import annotations

from datetime import timedelta

import allure

from automation_hub.orchestrator.gate import can_task_run
from automation_hub.orchestrator.registry import TaskConfig
from automation_hub.state.models import CurrentRun, HubState, TaskState
from automation_hub.storage import to_iso

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Admission Gate"),
]


def _state_with(clock, **task_fields) -> HubState:
    task_state = TaskState.fresh(clock().date())
    for key, value in task_fields.items():
        setattr(task_state, key, value)
    return HubState(tasks={"digest": task_state})


def test_unseen_task_is_ready_and_leaves_state_untouched(clock) -> None:
    state = HubState()

    decision = can_task_run(state, "digest", TaskConfig(name="digest"), now=clock())

    assert decision.can_run is True
    assert decision.reason == "Ready"
    assert "digest" not in state.tasks
    assert state.tasks == {}


def test_cooldown_boundary_is_inclusive(clock) -> None:
    config = TaskConfig(name="digest", cooldown_minutes=60)
    state = _state_with(clock, last_run=to_iso(clock() - timedelta(minutes=60)))

    assert can_task_run(state, "digest", config, now=clock()).can_run is True

    state = _state_with(clock, last_run=to_iso(clock() - timedelta(minutes=59, seconds=59)))
    decision = can_task_run(state, "digest", config, now=clock())
    assert decision.can_run is False
    assert decision.reason == "Cooldown: last run 60m ago"


def test_daily_limit_takes_priority_over_other_rules(clock) -> None:
    config = TaskConfig(name="digest", daily_limit=2, cooldown_minutes=30, max_retries=1)
    state = _state_with(
        clock,
        today_count=2,
        retry_count=5,
        last_run=to_iso(clock() - timedelta(minutes=1)),
    )

    decision = can_task_run(state, "digest", config, now=clock())

    assert decision.can_run is False
    assert decision.reason == "Daily limit reached (2/2)"


def test_max_retries_blocks_after_repeated_failures(clock) -> None:
    config = TaskConfig(name="digest", max_retries=2, cooldown_minutes=0)
    state = _state_with(clock, retry_count=2, last_run=to_iso(clock()))

    decision = can_task_run(state, "digest", config, now=clock())

    assert decision.can_run is False
    assert decision.reason == "Max retries exceeded (2/2)"


def test_running_task_is_not_admitted_twice(clock) -> None:
    config = TaskConfig(name="digest", cooldown_minutes=0)
    started = to_iso(clock() - timedelta(hours=3))
    state = _state_with(clock, current_run=CurrentRun(started_at=started))

    decision = can_task_run(state, "digest", config, now=clock())

    assert decision.can_run is False
    assert decision.reason == "Task already running"


def test_explicit_zero_limits_are_honoured(clock) -> None:
    state = _state_with(clock)

    blocked = can_task_run(state, "digest", TaskConfig(name="digest", daily_limit=0), now=clock())
    assert blocked.reason == "Daily limit reached (0/0)"

    no_retries = TaskConfig(name="digest", max_retries=0)
    assert can_task_run(state, "digest", no_retries, now=clock()).reason == (
        "Max retries exceeded (0/0)"
    )


def test_default_cooldown_applies_when_not_configured(clock) -> None:
    state = _state_with(clock, last_run=to_iso(clock() - timedelta(minutes=45)))

    decision = can_task_run(state, "digest", TaskConfig(name="digest"), now=clock())

    assert decision.can_run is False
    assert decision.reason.startswith("Cooldown")


def test_gate_does_not_mutate_existing_counters(clock) -> None:
    state = _state_with(clock, today_count=1, retry_count=1)

    can_task_run(state, "digest", TaskConfig(name="digest"), now=clock())

    assert state.tasks["digest"].today_count == 1
    assert state.tasks["digest"].retry_count == 1
