from __future__ import annotations

import json

import allure

from automation_hub.orchestrator.gate import can_task_run
from automation_hub.orchestrator.registry import TaskConfig
from automation_hub.state.history import HistoryLog
from automation_hub.state.models import TaskResult
from automation_hub.state.store import StateStore
from automation_hub.storage import to_iso

pytestmark = [
    allure.epic("Execution State"),
    allure.feature("State Store"),
]


def _store(tmp_path, clock) -> StateStore:
    return StateStore(
        tmp_path / "state.json",
        history=HistoryLog(tmp_path / "history.json", clock=clock),
        clock=clock,
    )


def test_load_state_returns_defaults_when_document_missing(tmp_path, clock) -> None:
    state = _store(tmp_path, clock).load_state()

    assert state.version == "1.0"
    assert state.tasks == {}
    assert state.global_stats.total_runs == 0
    assert state.last_run is None


def test_load_state_falls_back_to_defaults_on_corrupt_document(tmp_path, clock) -> None:
    (tmp_path / "state.json").write_text("{not json", "utf-8")

    state = _store(tmp_path, clock).load_state()

    assert state.tasks == {}
    assert state.global_stats.total_runs == 0


def test_corrupt_document_is_replaced_by_next_write(tmp_path, clock) -> None:
    (tmp_path / "state.json").write_text("{not json", "utf-8")
    store = _store(tmp_path, clock)
    state = store.load_state()

    store.start_task(state, "digest")
    store.complete_task(state, "digest", True, TaskResult(output="done"))

    persisted = store.load_state()
    assert persisted.tasks["digest"].today_count == 1
    assert persisted.tasks["digest"].success_count == 1
    assert persisted.global_stats.total_runs == 1
    assert json.loads((tmp_path / "state.json").read_text("utf-8"))["revision"] >= 1
    decision = can_task_run(
        persisted,
        "digest",
        TaskConfig(name="digest", daily_limit=1),
        now=clock(),
    )
    assert decision.can_run is False


def test_load_state_tolerates_non_mapping_sections(tmp_path, clock) -> None:
    (tmp_path / "state.json").write_text(
        json.dumps({"tasks": [1], "global_stats": 3}),
        "utf-8",
    )

    state = _store(tmp_path, clock).load_state()

    assert state.tasks == {}
    assert state.global_stats.total_runs == 0
    assert state.global_stats.total_success == 0


def test_load_state_merges_missing_global_fields(tmp_path, clock) -> None:
    (tmp_path / "state.json").write_text(
        json.dumps({"tasks": {}, "global_stats": {"total_runs": 4}}),
        "utf-8",
    )

    state = _store(tmp_path, clock).load_state()

    assert state.global_stats.total_runs == 4
    assert state.global_stats.total_success == 0
    assert state.global_stats.total_failure == 0


def test_daily_counter_rolls_over_once_on_new_day(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()
    store.start_task(state, "digest")
    store.complete_task(state, "digest", True, TaskResult(output="done"))
    assert state.tasks["digest"].today_count == 1

    clock.advance(days=1)
    rolled = store.load_state()
    assert rolled.tasks["digest"].today_count == 0
    assert rolled.tasks["digest"].today_date == clock().date().isoformat()

    store.start_task(rolled, "digest")
    store.complete_task(rolled, "digest", True)
    clock.advance(hours=3)
    same_day = store.load_state()
    assert same_day.tasks["digest"].today_count == 1


def test_start_task_marks_run_in_flight_and_persists(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()

    store.start_task(state, "digest")

    persisted = store.load_state()
    assert persisted.tasks["digest"].is_running
    assert persisted.tasks["digest"].current_run.started_at == to_iso(clock())
    assert persisted.tasks["digest"].last_run == to_iso(clock())
    assert state.revision == persisted.revision


def test_complete_task_success_resets_retries_and_clears_error(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()
    for _ in range(2):
        store.start_task(state, "digest")
        store.complete_task(state, "digest", False, TaskResult(error="boom"))
    assert state.tasks["digest"].retry_count == 2
    assert state.tasks["digest"].last_error == "boom"

    store.start_task(state, "digest")
    store.complete_task(state, "digest", True, TaskResult(output="ok"))

    task_state = store.load_state().tasks["digest"]
    assert task_state.retry_count == 0
    assert task_state.last_error is None
    assert task_state.current_run is None
    assert task_state.success_count == 1
    assert task_state.failure_count == 2
    assert task_state.total_runs == 3
    assert task_state.last_success == to_iso(clock())


def test_complete_task_failure_defaults_error_message(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()
    store.start_task(state, "digest")

    store.complete_task(state, "digest", False)

    assert store.load_state().tasks["digest"].last_error == "Unknown error"


def test_global_totals_stay_consistent_and_history_grows(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()
    outcomes = [True, False, True, True, False]
    for index, success in enumerate(outcomes):
        name = f"task-{index % 2}"
        store.start_task(state, name)
        store.complete_task(state, name, success)
        clock.advance(minutes=1)

    stats = store.load_state().global_stats
    assert stats.total_runs == len(outcomes)
    assert stats.total_runs == stats.total_success + stats.total_failure
    assert stats.total_success == 3
    assert len(store.history.get_history(50)) == len(outcomes)


def test_complete_task_applies_to_latest_persisted_revision(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    orchestrator_view = store.load_state()
    store.start_task(orchestrator_view, "digest")

    # Another writer records a different task while the orchestrator holds a stale snapshot.
    other_view = store.load_state()
    store.start_task(other_view, "report")
    store.complete_task(other_view, "report", True)

    store.complete_task(orchestrator_view, "digest", True)

    persisted = store.load_state()
    assert set(persisted.tasks) == {"digest", "report"}
    assert persisted.global_stats.total_runs == 2
    assert orchestrator_view.tasks["report"].success_count == 1


def test_clear_current_run_only_clears_the_observed_marker(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()
    store.start_task(state, "digest")
    observed = state.tasks["digest"].current_run.started_at

    clock.advance(minutes=5)
    store.complete_task(state, "digest", True)
    store.start_task(state, "digest")

    assert store.clear_current_run("digest", expected_started_at=observed) is False
    assert store.load_state().tasks["digest"].is_running

    fresh_marker = store.load_state().tasks["digest"].current_run.started_at
    assert store.clear_current_run("digest", expected_started_at=fresh_marker) is True
    cleared = store.load_state().tasks["digest"]
    assert cleared.current_run is None
    assert cleared.total_runs == 1


def test_save_state_bumps_revision_and_stamps_update(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()

    assert store.save_state(state) is True
    assert store.save_state(state) is True

    persisted = store.load_state()
    assert persisted.revision == 2
    assert persisted.last_updated == to_iso(clock())


def test_save_state_logs_and_returns_false_when_directory_unwritable(tmp_path, clock) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", "utf-8")
    store = StateStore(blocker / "state.json", clock=clock)

    assert store.save_state(store.load_state()) is False


def test_record_run_pass_stamps_last_run(tmp_path, clock) -> None:
    store = _store(tmp_path, clock)
    state = store.load_state()
    clock.advance(seconds=30)

    store.record_run_pass(state)

    assert store.load_state().last_run == to_iso(clock())
