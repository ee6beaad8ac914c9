"""Wiring of the shared hub collaborators from settings."""

from __future__ import annotations

from dataclasses import dataclass

from automation_hub.config import Settings
from automation_hub.learning import LearningRecorder
from automation_hub.orchestrator.executors import ExecutorRegistry
from automation_hub.orchestrator.registry import TaskRegistry
from automation_hub.orchestrator.runner import HubOrchestrator
from automation_hub.overseer.journal import OverseerJournal
from automation_hub.overseer.monitor import Overseer
from automation_hub.retention import DataOptimizer
from automation_hub.reviews import ReviewQueue
from automation_hub.state.history import HistoryLog
from automation_hub.state.store import StateStore
from automation_hub.storage import Clock, utc_now


@dataclass(slots=True)
class HubServices:
    """Every collaborator built over one data directory."""

    settings: Settings
    store: StateStore
    registry: TaskRegistry
    reviews: ReviewQueue
    recorder: LearningRecorder
    optimizer: DataOptimizer
    clock: Clock

    @classmethod
    def build(cls, settings: Settings, *, clock: Clock = utc_now) -> HubServices:
        paths = settings.paths
        history = HistoryLog(
            paths.history_file,
            max_entries=settings.orchestrator.history_max_entries,
            clock=clock,
        )
        return cls(
            settings=settings,
            store=StateStore(paths.state_file, history=history, clock=clock),
            registry=TaskRegistry.load(paths.tasks_file),
            reviews=ReviewQueue(paths.reviews_file, clock=clock),
            recorder=LearningRecorder(paths.learning_file, clock=clock),
            optimizer=DataOptimizer(paths, settings.retention, clock=clock),
            clock=clock,
        )

    @property
    def history(self) -> HistoryLog:
        return self.store.history

    def orchestrator(self, executors: ExecutorRegistry | None = None) -> HubOrchestrator:
        return HubOrchestrator(
            store=self.store,
            registry=self.registry,
            executors=executors or ExecutorRegistry.from_registry(self.registry),
            recorder=self.recorder,
            failure_threshold=self.settings.orchestrator.failure_threshold,
            clock=self.clock,
        )

    def overseer(self) -> Overseer:
        return Overseer(
            settings=self.settings.overseer,
            store=self.store,
            registry=self.registry,
            reviews=self.reviews,
            journal=OverseerJournal(
                self.settings.paths.overseer_log_file,
                max_entries=self.settings.overseer.max_log_entries,
                clock=self.clock,
            ),
            state_path=self.settings.paths.overseer_state_file,
            optimizer=self.optimizer,
            clock=self.clock,
        )
