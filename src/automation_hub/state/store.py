"""Durable load/save of the shared hub state document."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path

from automation_hub.state.history import HistoryLog
from automation_hub.state.models import CurrentRun, HubState, TaskResult, TaskState
from automation_hub.storage import (
    Clock,
    atomic_write_json,
    locked_document,
    read_json_object,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

Mutator = Callable[[HubState], bool]


class StateStore:
    """Owns every write to ``state.json``.

    Mutations are applied as read-modify-write cycles under an exclusive
    document lock, so the orchestrator and the overseer always mutate the
    latest persisted revision instead of overwriting each other's snapshot.
    Reads and writes never raise: failures are logged and degrade to
    defaults (load) or a dropped write (save).
    """

    def __init__(
        self,
        path: Path,
        *,
        history: HistoryLog | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.path = path
        self.history = history or HistoryLog(path.with_name("history.json"), clock=clock)
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    def load_state(self) -> HubState:
        """Load the document, merge defaults, and roll daily counters over."""

        try:
            return self._read()
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to load state %s: %s", self.path, error)
            return HubState()

    def save_state(self, state: HubState) -> bool:
        """Persist the whole document; last writer wins for this call."""

        try:
            with locked_document(self.path):
                on_disk = self._persisted_revision()
                state.revision = max(state.revision, on_disk) + 1
                state.last_updated = to_iso(self._clock())
                atomic_write_json(self.path, state.to_dict())
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to save state %s: %s", self.path, error)
            return False
        return True

    def update(self, mutator: Mutator) -> HubState | None:
        """Apply ``mutator`` to the latest persisted revision and write it back.

        ``mutator`` returns ``False`` to skip the write. Returns the persisted
        snapshot, or ``None`` when nothing was written.
        """

        try:
            with locked_document(self.path):
                state = self._read_or_default()
                if not mutator(state):
                    return None
                state.revision += 1
                state.last_updated = to_iso(self._clock())
                atomic_write_json(self.path, state.to_dict())
                return state
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to update state %s: %s", self.path, error)
            return None

    def get_task_state(self, state: HubState, name: str) -> TaskState:
        """Return the task's state, creating a zero-valued one on first access."""

        task_state = state.tasks.get(name)
        if task_state is None:
            task_state = TaskState.fresh(self.today())
            state.tasks[name] = task_state
        return task_state

    def start_task(self, state: HubState, name: str) -> None:
        """Mark ``name`` as in flight and persist immediately."""

        started_at = to_iso(self._clock())

        def _apply(target: HubState) -> bool:
            task_state = self.get_task_state(target, name)
            task_state.current_run = CurrentRun(started_at=started_at)
            task_state.last_run = started_at
            return True

        self._apply_and_refresh(state, _apply)

    def complete_task(
        self,
        state: HubState,
        name: str,
        success: bool,
        result: TaskResult | None = None,
    ) -> None:
        """Clear the in-flight marker, update counters, and append history."""

        result = result or TaskResult()
        finished_at = to_iso(self._clock())

        def _apply(target: HubState) -> bool:
            task_state = self.get_task_state(target, name)
            task_state.current_run = None
            task_state.total_runs += 1
            if success:
                task_state.success_count += 1
                task_state.today_count += 1
                task_state.last_success = finished_at
                task_state.last_error = None
                task_state.retry_count = 0
                target.global_stats.total_success += 1
            else:
                task_state.failure_count += 1
                task_state.last_error = result.error or "Unknown error"
                task_state.retry_count += 1
                target.global_stats.total_failure += 1
            target.global_stats.total_runs += 1
            return True

        self._apply_and_refresh(state, _apply)
        self.history.add_entry(name, success, result)

    def clear_current_run(self, name: str, *, expected_started_at: str) -> bool:
        """Compare-and-swap reset of a stuck in-flight marker.

        The marker is cleared only if it still carries ``expected_started_at``;
        counters and history are left untouched.
        """

        cleared = False

        def _apply(target: HubState) -> bool:
            nonlocal cleared
            task_state = target.tasks.get(name)
            if task_state is None or task_state.current_run is None:
                return False
            if task_state.current_run.started_at != expected_started_at:
                return False
            task_state.current_run = None
            cleared = True
            return True

        self.update(_apply)
        return cleared

    def record_run_pass(self, state: HubState) -> None:
        """Stamp the hub-level ``last_run`` after an orchestrator pass."""

        ran_at = to_iso(self._clock())

        def _apply(target: HubState) -> bool:
            target.last_run = ran_at
            return True

        self._apply_and_refresh(state, _apply)

    def _apply_and_refresh(self, state: HubState, mutator: Mutator) -> None:
        mutator(state)
        persisted = self.update(mutator)
        if persisted is not None:
            state.replace_with(persisted)

    def _read(self) -> HubState:
        raw = read_json_object(self.path)
        today = self.today()
        if raw is None:
            return HubState()
        state = HubState.from_dict(raw, today=today)
        _roll_over_daily_counters(state, today)
        return state

    def _read_or_default(self) -> HubState:
        # An unreadable document is replaced by the next write.
        try:
            return self._read()
        except (ValueError, TypeError) as error:
            logger.error("Discarding unreadable state %s: %s", self.path, error)
            return HubState()

    def _persisted_revision(self) -> int:
        try:
            raw = read_json_object(self.path)
            return int(raw.get("revision", 0) or 0) if raw else 0
        except (ValueError, TypeError) as error:
            logger.error("Discarding unreadable state %s: %s", self.path, error)
            return 0


def _roll_over_daily_counters(state: HubState, today: date) -> None:
    today_iso = today.isoformat()
    for task_state in state.tasks.values():
        if task_state.today_date != today_iso:
            task_state.today_count = 0
            task_state.today_date = today_iso
