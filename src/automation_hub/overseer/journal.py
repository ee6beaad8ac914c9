"""Size-capped overseer event log persisted as a JSON array."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from automation_hub.overseer.models import LogEntryType
from automation_hub.state.history import TrimResult
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

DEFAULT_MAX_LOG_ENTRIES = 500


class OverseerJournal:
    """In-memory ring buffer flushed to ``overseer-log.json``."""

    def __init__(
        self,
        path: Path,
        *,
        max_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        clock: Clock = utc_now,
    ) -> None:
        self.path = path
        self.max_entries = max_entries
        self._clock = clock
        self.entries: list[dict[str, Any]] = []

    def load(self) -> None:
        try:
            self.entries = self._read()
        except (OSError, ValueError, TypeError) as error:
            logger.warning("Could not load overseer log %s: %s", self.path, error)
            self.entries = []

    def log(self, entry_type: LogEntryType, message: str, **details: Any) -> dict[str, Any]:
        entry = {
            "timestamp": to_iso(self._clock()),
            "type": entry_type.value,
            "message": message,
            **details,
        }
        self.entries.append(entry)
        if entry_type in (LogEntryType.ALERT, LogEntryType.ERROR):
            logger.warning("[OVERSEER] %s", message)
        elif entry_type is LogEntryType.ACTION:
            logger.info("[OVERSEER] %s", message)
        else:
            logger.debug("[OVERSEER] %s", message)
        return entry

    def flush(self) -> None:
        """Cap the buffer and persist it; failures are logged."""

        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries :]
        try:
            with locked_document(self.path):
                atomic_write_json(self.path, self.entries)
        except OSError as error:
            logger.error("Failed to save overseer log %s: %s", self.path, error)

    def recent(self, limit: int) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        return self.entries[-limit:]

    def trim(self, max_entries: int) -> TrimResult:
        """Keep the most recent ``max_entries`` persisted entries; I/O errors propagate."""

        with locked_document(self.path):
            entries = self._read()
            size_before = serialized_size(entries)
            if len(entries) <= max_entries:
                return TrimResult(
                    pruned=0,
                    entries=len(entries),
                    size_before=size_before,
                    size_after=size_before,
                )
            kept = entries[-max_entries:] if max_entries > 0 else []
            atomic_write_json(self.path, kept)
            return TrimResult(
                pruned=len(entries) - len(kept),
                entries=len(kept),
                size_before=size_before,
                size_after=serialized_size(kept),
            )

    def _read(self) -> list[dict[str, Any]]:
        payload = read_json(self.path)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TypeError(f"Expected overseer log array in {self.path}")
        return [item for item in payload if isinstance(item, dict)]
