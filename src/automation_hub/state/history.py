"""Append-only, size-bounded execution history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from automation_hub.state.models import HistoryEntry, TaskResult
from automation_hub.storage import (
    Clock,
    atomic_write_json,
    locked_document,
    read_json,
    serialized_size,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500


@dataclass(slots=True)
class TrimResult:
    """Outcome of a retention trim on a bounded JSON list."""

    pruned: int
    entries: int
    size_before: int
    size_after: int


class HistoryLog:
    """History document persisted as ``{"entries": [...]}``, oldest first."""

    def __init__(
        self,
        path: Path,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Clock = utc_now,
    ) -> None:
        self.path = path
        self.max_entries = max_entries
        self._clock = clock

    def add_entry(self, task: str, success: bool, result: TaskResult | None = None) -> HistoryEntry:
        """Append one entry, keeping only the most recent ``max_entries``."""

        result = result or TaskResult()
        entry = HistoryEntry(
            task=task,
            timestamp=to_iso(self._clock()),
            success=success,
            output=result.output,
            url=result.url,
            error=result.error,
            duration_ms=result.duration_ms,
        )
        try:
            with locked_document(self.path):
                entries = self._read_entries()
                entries.append(entry.to_dict())
                if len(entries) > self.max_entries:
                    entries = entries[-self.max_entries :]
                atomic_write_json(self.path, {"entries": entries})
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to update history %s: %s", self.path, error)
        return entry

    def get_history(self, limit: int = 50) -> list[HistoryEntry]:
        """Most recent ``limit`` entries, most-recent-first."""

        if limit <= 0:
            return []
        try:
            entries = self._read_entries()
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to load history %s: %s", self.path, error)
            return []
        recent = entries[-min(limit, self.max_entries) :]
        return [HistoryEntry.from_dict(raw) for raw in reversed(recent)]

    def trim(self, max_entries: int) -> TrimResult:
        """Keep the most recent ``max_entries`` entries; I/O errors propagate."""

        with locked_document(self.path):
            entries = self._read_entries()
            size_before = serialized_size(entries)
            if len(entries) <= max_entries:
                return TrimResult(
                    pruned=0,
                    entries=len(entries),
                    size_before=size_before,
                    size_after=size_before,
                )
            kept = entries[-max_entries:] if max_entries > 0 else []
            atomic_write_json(self.path, {"entries": kept})
            return TrimResult(
                pruned=len(entries) - len(kept),
                entries=len(kept),
                size_before=size_before,
                size_after=serialized_size(kept),
            )

    def _read_entries(self) -> list[dict[str, Any]]:
        payload = read_json(self.path)
        if payload is None:
            return []
        # Older documents stored the history as a bare array.
        raw_entries = payload.get("entries") if isinstance(payload, dict) else payload
        if not isinstance(raw_entries, list):
            raise TypeError(f"Expected history entries array in {self.path}")
        return [item for item in raw_entries if isinstance(item, dict)]
