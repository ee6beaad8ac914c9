from __future__ import annotations

import json
import os
import signal

import allure

from automation_hub.overseer.models import (
    ActionType,
    CheckResult,
    IssueType,
    LogEntryType,
    OverseerStatus,
)
from automation_hub.services import HubServices

pytestmark = [
    allure.epic("Overseer"),
    allure.feature("Monitor Loop"),
]


def _services(settings, clock) -> HubServices:
    return HubServices.build(settings, clock=clock)


def test_stuck_task_is_reset_without_touching_counters(settings, clock) -> None:
    services = _services(settings, clock)
    state = services.store.load_state()
    services.store.start_task(state, "digest")
    clock.advance(minutes=65)
    overseer = services.overseer()

    report = overseer.perform_health_check()

    assert [action.action for action in report.actions] == [ActionType.RESET_STUCK_TASK]
    task_state = services.store.load_state().tasks["digest"]
    assert task_state.current_run is None
    assert task_state.total_runs == 0
    assert task_state.failure_count == 0
    assert overseer.state.status is OverseerStatus.HEALTHY
    assert overseer.state.recent_actions[0]["action"] == "reset_stuck_task"


def test_failing_check_does_not_block_the_others(settings, clock, monkeypatch) -> None:
    services = _services(settings, clock)
    state = services.store.load_state()
    services.store.start_task(state, "digest")
    clock.advance(minutes=35)

    def _explode(*args, **kwargs):
        raise RuntimeError("registry vanished")

    monkeypatch.setattr("automation_hub.overseer.monitor.check_missed_schedules", _explode)
    overseer = services.overseer()

    report = overseer.perform_health_check()

    assert report.failed_checks == ["missed_schedules"]
    assert [issue.type for issue in report.issues] == [IssueType.STUCK_TASK]
    assert overseer.state.status is OverseerStatus.ISSUES_DETECTED
    log = json.loads(settings.paths.overseer_log_file.read_text("utf-8"))
    assert any(entry["message"] == "Check missed_schedules failed" for entry in log)
    assert any(entry["type"] == "alert" for entry in log)


def test_snapshot_is_persisted_after_each_check(settings, clock) -> None:
    services = _services(settings, clock)
    services.reviews.add("Draft post")
    overseer = services.overseer()

    overseer.perform_health_check()

    snapshot = json.loads(settings.paths.overseer_state_file.read_text("utf-8"))
    assert snapshot["checks_performed"] == 1
    assert snapshot["status"] == "healthy"
    assert snapshot["health_summary"]["pending_reviews"] == 1
    assert snapshot["health_summary"]["success_rate"] == 100
    assert snapshot["last_check"] is not None


def test_optimization_runs_every_n_checks(settings, clock) -> None:
    settings.overseer.run_optimization_every = 2
    overseer = _services(settings, clock).overseer()

    first = overseer.perform_health_check()
    second = overseer.perform_health_check()

    assert first.optimization is None
    assert second.optimization is not None
    assert overseer.state.last_optimization == second.optimization


def test_optimization_trims_overseer_log_and_reports_savings(settings, clock) -> None:
    settings.overseer.run_optimization_every = 1
    settings.retention.max_overseer_log = 5
    overseer = _services(settings, clock).overseer()
    for index in range(30):
        overseer.journal.log(LogEntryType.INFO, f"event {index}")

    report = overseer.perform_health_check()

    assert report.optimization["overseer_log"]["action"] == "optimized"
    assert ActionType.DATA_OPTIMIZATION in [action.action for action in report.actions]
    persisted = json.loads(settings.paths.overseer_log_file.read_text("utf-8"))
    # Trimmed tail plus the optimization action logged after the reload.
    assert len(persisted) == 6
    assert persisted[-1]["message"].startswith("Data optimized: saved")
    assert persisted[0]["message"] != "event 0"


def test_run_forever_stops_after_max_cycles(settings, clock) -> None:
    settings.overseer.check_interval_seconds = 0.01
    overseer = _services(settings, clock).overseer()

    overseer.run_forever(max_cycles=2)

    assert overseer.state.checks_performed == 2
    snapshot = json.loads(settings.paths.overseer_state_file.read_text("utf-8"))
    assert snapshot["status"] == "stopped"
    assert snapshot["started_at"] is not None
    messages = [
        entry["message"]
        for entry in json.loads(settings.paths.overseer_log_file.read_text("utf-8"))
    ]
    assert messages[0] == "Overseer started"
    assert messages[-1] == "Overseer stopped"


def test_sigterm_stops_loop_and_flushes_state(settings, clock, monkeypatch) -> None:
    settings.overseer.check_interval_seconds = 0.01

    def _terminate(*args, **kwargs):
        os.kill(os.getpid(), signal.SIGTERM)
        return CheckResult()

    monkeypatch.setattr("automation_hub.overseer.monitor.check_stuck_tasks", _terminate)
    overseer = _services(settings, clock).overseer()

    overseer.run_forever(max_cycles=50)

    assert overseer.state.checks_performed == 1
    assert overseer._stop_signal_name == "SIGTERM"
    snapshot = json.loads(settings.paths.overseer_state_file.read_text("utf-8"))
    assert snapshot["status"] == "stopped"
    messages = [
        entry["message"]
        for entry in json.loads(settings.paths.overseer_log_file.read_text("utf-8"))
    ]
    assert messages[-1] == "Overseer stopped"


def test_start_resumes_check_counter_from_previous_snapshot(settings, clock) -> None:
    settings.overseer.check_interval_seconds = 0.01
    _services(settings, clock).overseer().run_forever(max_cycles=1)

    resumed = _services(settings, clock).overseer()
    resumed.run_forever(max_cycles=1)

    assert resumed.state.checks_performed == 2
