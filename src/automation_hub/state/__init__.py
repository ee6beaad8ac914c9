"""Persisted execution state: hub document and run history."""

from automation_hub.state.history import HistoryLog
from automation_hub.state.models import (
    CurrentRun,
    GlobalStats,
    HistoryEntry,
    HubState,
    TaskResult,
    TaskState,
)
from automation_hub.state.store import StateStore

__all__ = [
    "CurrentRun",
    "GlobalStats",
    "HistoryEntry",
    "HistoryLog",
    "HubState",
    "StateStore",
    "TaskResult",
    "TaskState",
]
