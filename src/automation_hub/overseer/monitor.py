"""Long-lived overseer loop: health checks, auto-recovery and retention."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from automation_hub.config import OverseerSettings
from automation_hub.orchestrator.registry import TaskRegistry
from automation_hub.overseer.checks import (
    build_health_summary,
    check_missed_schedules,
    check_review_queue,
    check_stuck_tasks,
    check_system_health,
)
from automation_hub.overseer.journal import OverseerJournal
from automation_hub.overseer.models import (
    ActionType,
    CheckResult,
    HealthIssue,
    HealthSummary,
    LogEntryType,
    OverseerState,
    OverseerStatus,
    RecoveryAction,
)
from automation_hub.retention import DataOptimizer
from automation_hub.reviews import ReviewQueue
from automation_hub.state.models import HistoryEntry, HubState
from automation_hub.state.store import StateStore
from automation_hub.storage import (
    Clock,
    atomic_write_json,
    locked_document,
    read_json_object,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

HISTORY_LOOKBACK = 100


@dataclass(slots=True)
class CycleReport:
    """Everything one health check cycle found or did."""

    issues: list[HealthIssue] = field(default_factory=list)
    actions: list[RecoveryAction] = field(default_factory=list)
    summary: HealthSummary | None = None
    failed_checks: list[str] = field(default_factory=list)
    optimization: dict[str, Any] | None = None


class Overseer:
    """Watches the shared hub state independently of orchestrator runs."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: OverseerSettings,
        store: StateStore,
        registry: TaskRegistry,
        reviews: ReviewQueue,
        journal: OverseerJournal,
        state_path: Path,
        optimizer: DataOptimizer | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.store = store
        self.registry = registry
        self.reviews = reviews
        self.journal = journal
        self.state_path = state_path
        self.optimizer = optimizer
        self._clock = clock
        self.state = OverseerState(auto_recovery_enabled=settings.auto_recovery_enabled)
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def start(self) -> None:
        """Restore the previous snapshot and log, then mark the overseer running."""

        self.state = self.load_state()
        self.journal.load()
        self.state.status = OverseerStatus.RUNNING
        self.state.started_at = to_iso(self._clock())
        self.state.auto_recovery_enabled = self.settings.auto_recovery_enabled
        self.save_state()
        self.journal.log(
            LogEntryType.INFO,
            "Overseer started",
            check_interval=f"{self.settings.check_interval_seconds:g}s",
        )

    def run_forever(self, *, max_cycles: int | None = None) -> None:
        """Check on a fixed interval until a stop is requested.

        Errors raised by ``start`` propagate to the caller; a failed cycle is
        logged and the loop carries on.
        """

        cycles = 0
        with self._signal_handlers():
            self.start()
            try:
                while not self._stop_requested:
                    try:
                        self.perform_health_check()
                    except Exception as error:  # noqa: BLE001
                        logger.exception("Health check cycle failed")
                        self.journal.log(
                            LogEntryType.ERROR,
                            "Health check failed",
                            error=str(error),
                        )
                        self.journal.flush()
                    cycles += 1
                    if max_cycles is not None and cycles >= max_cycles:
                        break
                    self._sleep_with_stop(self.settings.check_interval_seconds)
            finally:
                self.shutdown()

    def stop(self) -> None:
        self._stop_requested = True

    def shutdown(self) -> None:
        """Mark the overseer stopped and flush state and log."""

        logger.info("Overseer shutting down (signal=%s)", self._stop_signal_name)
        self.state.status = OverseerStatus.STOPPED
        self.save_state()
        self.journal.log(LogEntryType.INFO, "Overseer stopped")
        self.journal.flush()

    def perform_health_check(self) -> CycleReport:
        """Run every check once, persist the snapshot and maybe compact data."""

        self.journal.log(LogEntryType.CHECK, "Performing health check")
        now = self._clock()
        report = CycleReport()
        hub_state = self.store.load_state()
        pending = self._pending_reviews()
        history = self.store.history.get_history(HISTORY_LOOKBACK)

        checks: list[tuple[str, Callable[[], CheckResult]]] = [
            (
                "stuck_tasks",
                lambda: check_stuck_tasks(
                    hub_state,
                    now=now,
                    settings=self.settings,
                    reset_task=self._reset_stuck_task,
                ),
            ),
            (
                "missed_schedules",
                lambda: check_missed_schedules(
                    hub_state,
                    self.registry,
                    now=now,
                    settings=self.settings,
                ),
            ),
            (
                "review_queue",
                lambda: check_review_queue(pending, now=now, settings=self.settings),
            ),
            (
                "system_health",
                lambda: check_system_health(history, now=now, settings=self.settings),
            ),
        ]
        for name, check in checks:
            result = self._run_check(name, check)
            if result is None:
                report.failed_checks.append(name)
                continue
            for issue in result.issues:
                self.journal.log(LogEntryType.ALERT, issue.message, **issue.details)
            for action in result.actions:
                self.journal.log(
                    LogEntryType.ACTION,
                    action.message,
                    action=action.action.value,
                    **action.details,
                )
            report.issues.extend(result.issues)
            report.actions.extend(result.actions)

        report.summary = self._summarize(hub_state, history, len(pending))

        self.state.last_check = to_iso(now)
        self.state.checks_performed += 1
        self.state.status = (
            OverseerStatus.ISSUES_DETECTED if report.issues else OverseerStatus.HEALTHY
        )
        self.state.current_issues = [issue.to_dict() for issue in report.issues]
        self.state.recent_actions = [action.to_dict() for action in report.actions]
        self.state.health_summary = report.summary.to_dict() if report.summary else None
        self.state.auto_recovery_enabled = self.settings.auto_recovery_enabled

        if report.actions:
            self.journal.log(
                LogEntryType.ACTION,
                f"Auto-recovery: {len(report.actions)} action(s) taken",
                actions=self.state.recent_actions,
            )
        if report.issues:
            self.journal.log(
                LogEntryType.CHECK,
                f"Health check complete: {len(report.issues)} issue(s) found",
                issue_count=len(report.issues),
            )
        else:
            self.journal.log(LogEntryType.CHECK, "Health check complete: All systems healthy")

        if (
            self.optimizer is not None
            and self.state.checks_performed % self.settings.run_optimization_every == 0
        ):
            report.optimization = self._optimize(report)

        self.save_state()
        self.journal.flush()
        return report

    def load_state(self) -> OverseerState:
        try:
            raw = read_json_object(self.state_path)
        except (OSError, ValueError, TypeError) as error:
            logger.warning("Could not load overseer state %s: %s", self.state_path, error)
            raw = None
        if raw is None:
            return OverseerState(auto_recovery_enabled=self.settings.auto_recovery_enabled)
        return OverseerState.from_dict(raw)

    def save_state(self) -> None:
        try:
            with locked_document(self.state_path):
                atomic_write_json(self.state_path, self.state.to_dict())
        except OSError as error:
            logger.error("Failed to save overseer state %s: %s", self.state_path, error)

    def _run_check(self, name: str, check: Callable[[], CheckResult]) -> CheckResult | None:
        try:
            return check()
        except Exception as error:  # noqa: BLE001
            logger.exception("Overseer check %s failed", name)
            self.journal.log(LogEntryType.ERROR, f"Check {name} failed", error=str(error))
            return None

    def _summarize(
        self,
        hub_state: HubState,
        history: list[HistoryEntry],
        pending_reviews: int,
    ) -> HealthSummary | None:
        try:
            return build_health_summary(
                hub_state,
                self.registry,
                history,
                pending_reviews=pending_reviews,
                settings=self.settings,
            )
        except Exception as error:  # noqa: BLE001
            logger.exception("Overseer health summary failed")
            self.journal.log(LogEntryType.ERROR, "Health summary failed", error=str(error))
            return None

    def _pending_reviews(self) -> list[dict[str, Any]]:
        return self.reviews.pending()

    def _reset_stuck_task(self, name: str, started_at: str) -> bool:
        # Clears only the in-flight marker: counters and history stay untouched.
        cleared = self.store.clear_current_run(name, expected_started_at=started_at)
        if not cleared:
            self.journal.log(
                LogEntryType.ERROR,
                f"Failed to reset task {name}",
                task=name,
                started_at=started_at,
            )
        return cleared

    def _optimize(self, report: CycleReport) -> dict[str, Any] | None:
        if self.optimizer is None:
            return None
        # Persist pending entries first so the trim sees them, then reload the trimmed file.
        self.journal.flush()
        try:
            result = self.optimizer.run_optimization()
        except Exception as error:  # noqa: BLE001
            logger.exception("Data optimization failed")
            self.journal.log(LogEntryType.ERROR, "Data optimization failed", error=str(error))
            return None
        finally:
            self.journal.load()

        payload = result.to_dict()
        self.state.last_optimization = payload
        saved = result.total_saved_bytes
        if saved > 0:
            action = RecoveryAction(
                action=ActionType.DATA_OPTIMIZATION,
                message=f"Data optimized: saved {payload['total_saved_kb']}KB",
                details={"total_saved_bytes": saved},
            )
            report.actions.append(action)
            self.state.recent_actions.append(action.to_dict())
            self.journal.log(
                LogEntryType.ACTION,
                action.message,
                action=action.action.value,
                total_saved_bytes=saved,
            )
        return payload

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self._request_stop(signal_name=name)

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)

    def _request_stop(self, *, signal_name: str) -> None:
        self._stop_requested = True
        self._stop_signal_name = signal_name
