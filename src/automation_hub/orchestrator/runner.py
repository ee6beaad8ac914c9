"""Sequential run loop over the enabled tasks with a run-level circuit breaker."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from automation_hub.learning import LearningRecorder, OutcomeRecord
from automation_hub.orchestrator.executors import (
    ExecutorRegistry,
    TaskContext,
    TaskOutcome,
    task_logger,
)
from automation_hub.orchestrator.gate import can_task_run
from automation_hub.orchestrator.registry import TaskConfig, TaskRegistry
from automation_hub.state.models import HubState, TaskResult
from automation_hub.state.store import StateStore
from automation_hub.storage import Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3


@dataclass(slots=True)
class TaskRunResult:
    """What happened to one task during a pass."""

    task: str
    skipped: bool
    success: bool = False
    reason: str | None = None
    output: str | None = None
    url: str | None = None
    error: str | None = None
    duration_ms: int | None = None


@dataclass(slots=True)
class RunSummary:
    """Aggregate counters for one orchestrator invocation."""

    ran: int = 0
    skipped: int = 0
    success: int = 0
    failed: int = 0
    halted_by_breaker: bool = False
    results: list[TaskRunResult] = field(default_factory=list)


class HubOrchestrator:
    """Runs every enabled task once, strictly one after another."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: StateStore,
        registry: TaskRegistry,
        executors: ExecutorRegistry,
        recorder: LearningRecorder | None = None,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.registry = registry
        self.executors = executors
        self.recorder = recorder
        self.failure_threshold = failure_threshold
        self._clock = clock

    def run_all(self, only: str | None = None) -> RunSummary:
        """Make one pass; ``only`` restricts the pass to a single task name."""

        summary = RunSummary()
        tasks = self.registry.enabled()
        if only is not None:
            tasks = [task for task in tasks if task.name == only]
        unresolved = self.executors.validate(self.registry)
        for name, problem in unresolved.items():
            logger.error("Excluding %s from this run: %s", name, problem)
        tasks = [task for task in tasks if task.name not in unresolved]
        if not tasks:
            logger.warning("No enabled tasks found")
            return summary

        logger.info("Found %d enabled tasks", len(tasks))
        state = self.store.load_state()
        for config in tasks:
            result = self._run_task(state, config)
            summary.results.append(result)
            if result.skipped:
                summary.skipped += 1
            else:
                summary.ran += 1
                if result.success:
                    summary.success += 1
                else:
                    summary.failed += 1

            # Counts every failure in this pass, not only consecutive ones.
            if summary.failed >= self.failure_threshold:
                logger.error(
                    "Circuit breaker: %d failures in this run, stopping",
                    summary.failed,
                )
                summary.halted_by_breaker = True
                break

        self.store.record_run_pass(state)
        logger.info(
            "Run complete: ran=%d skipped=%d success=%d failed=%d",
            summary.ran,
            summary.skipped,
            summary.success,
            summary.failed,
        )
        return summary

    def _run_task(self, state: HubState, config: TaskConfig) -> TaskRunResult:
        name = config.name
        logger.info("Starting task: %s", name)
        decision = can_task_run(state, name, config, now=self._clock())
        if not decision.can_run:
            logger.info("Skipping %s: %s", name, decision.reason)
            return TaskRunResult(task=name, skipped=True, reason=decision.reason)

        self.store.start_task(state, name)
        context = TaskContext(
            task_name=name,
            config=config,
            logger=task_logger(name),
            task_state=self.store.get_task_state(state, name),
        )
        started = time.monotonic()
        outcome = self._execute(context)
        duration_ms = int((time.monotonic() - started) * 1000)

        self.store.complete_task(
            state,
            name,
            outcome.success,
            TaskResult(
                output=outcome.output,
                url=outcome.url,
                error=outcome.error,
                duration_ms=duration_ms,
            ),
        )
        self._record_outcome(config, outcome, duration_ms)
        if outcome.success:
            logger.info("Task completed: %s", name)
        else:
            logger.error("Task failed: %s: %s", name, outcome.error)
        return TaskRunResult(
            task=name,
            skipped=False,
            success=outcome.success,
            output=outcome.output,
            url=outcome.url,
            error=outcome.error,
            duration_ms=duration_ms,
        )

    def _execute(self, context: TaskContext) -> TaskOutcome:
        executor = self.executors.get(context.task_name)
        if executor is None:
            return TaskOutcome.err(f"No executor registered for {context.task_name}")
        try:
            outcome = executor.execute(context)
        except Exception as error:  # noqa: BLE001
            logger.exception("Executor for %s raised", context.task_name)
            return TaskOutcome.err(str(error) or type(error).__name__)
        if not isinstance(outcome, TaskOutcome):
            return TaskOutcome.err(f"Executor returned {type(outcome).__name__}, not TaskOutcome")
        return outcome

    def _record_outcome(self, config: TaskConfig, outcome: TaskOutcome, duration_ms: int) -> None:
        if self.recorder is None:
            return
        try:
            self.recorder.record_outcome(
                OutcomeRecord(
                    task=config.name,
                    success=outcome.success,
                    duration_ms=duration_ms,
                    output=outcome.output,
                    url=outcome.url,
                    error=outcome.error,
                    category=config.category,
                    content_type=outcome.content_type,
                ),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record learning outcome for %s", config.name)
