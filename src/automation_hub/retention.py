"""Retention compaction for every persisted log and document."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any

from automation_hub.config import PathSettings, RetentionSettings
from automation_hub.overseer.journal import OverseerJournal
from automation_hub.state.history import HistoryLog, TrimResult
from automation_hub.storage import (
    Clock,
    atomic_write_json,
    from_iso,
    locked_document,
    read_json_object,
    serialized_size,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

ACTION_OPTIMIZED = "optimized"
ACTION_NO_CHANGES = "no_changes"
ACTION_SKIPPED = "skipped"
ACTION_ERROR = "error"

ROTATED_LOG_PATTERNS = (
    re.compile(r"hub-\d{4}-\d{2}-\d{2}\.log"),
    re.compile(r"\.log\.\d+$"),
    re.compile(r"\.log\.\d{4}-\d{2}-\d{2}$"),
)


@dataclass(slots=True)
class CategoryReport:
    """Result of compacting one category of persisted data."""

    action: str
    size_before: int = 0
    size_after: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def saved_bytes(self) -> int:
        return max(0, self.size_before - self.size_after)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "size_before": self.size_before,
            "size_after": self.size_after,
            "saved": self.saved_bytes,
            **self.details,
        }


@dataclass(slots=True)
class OptimizationReport:
    timestamp: str
    learning: CategoryReport
    overseer_log: CategoryReport
    history: CategoryReport
    log_files: CategoryReport

    @property
    def total_saved_bytes(self) -> int:
        return sum(report.saved_bytes for _, report in self.categories())

    def categories(self) -> list[tuple[str, CategoryReport]]:
        return [
            ("learning", self.learning),
            ("overseer_log", self.overseer_log),
            ("history", self.history),
            ("log_files", self.log_files),
        ]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"timestamp": self.timestamp}
        payload.update({name: report.to_dict() for name, report in self.categories()})
        payload["total_saved_bytes"] = self.total_saved_bytes
        payload["total_saved_kb"] = round(self.total_saved_bytes / 1024, 2)
        return payload


@dataclass(slots=True)
class FileStat:
    name: str
    size: int
    modified: str


@dataclass(slots=True)
class StorageStats:
    data: list[FileStat]
    logs: list[FileStat]

    @property
    def total_bytes(self) -> int:
        return sum(item.size for item in [*self.data, *self.logs])


def week_start(moment: datetime) -> date:
    """Sunday that opens the UTC week containing ``moment``."""

    day = moment.date()
    return day - timedelta(days=(day.weekday() + 1) % 7)


def fold_into_weekly_metrics(
    weekly_metrics: list[dict[str, Any]],
    outcomes: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Accumulate ``outcomes`` into weekly buckets, merging into existing weeks."""

    buckets = {bucket.get("week_start"): bucket for bucket in weekly_metrics}
    merged = list(weekly_metrics)
    for outcome in outcomes:
        try:
            key = week_start(from_iso(str(outcome["timestamp"]))).isoformat()
        except (KeyError, ValueError):
            continue
        bucket = buckets.get(key)
        if bucket is None:
            bucket = {
                "week_start": key,
                "total_runs": 0,
                "successes": 0,
                "failures": 0,
                "task_breakdown": {},
                "error_breakdown": {},
            }
            buckets[key] = bucket
            merged.append(bucket)
        bucket.setdefault("task_breakdown", {})
        bucket.setdefault("error_breakdown", {})

        success = bool(outcome.get("success"))
        bucket["total_runs"] += 1
        if success:
            bucket["successes"] += 1
        else:
            bucket["failures"] += 1
            error_type = outcome.get("error_type")
            if error_type:
                errors = bucket["error_breakdown"]
                errors[error_type] = errors.get(error_type, 0) + 1
        task = outcome.get("task")
        if task:
            task_stats = bucket["task_breakdown"].setdefault(task, {"runs": 0, "successes": 0})
            task_stats["runs"] += 1
            if success:
                task_stats["successes"] += 1

    for bucket in merged:
        runs = bucket.get("total_runs", 0)
        bucket["success_rate"] = round(bucket.get("successes", 0) / runs * 100, 1) if runs else 0.0
    merged.sort(key=lambda bucket: str(bucket.get("week_start")))
    return merged


class DataOptimizer:
    """Applies the retention policy to learning data, logs and history."""

    def __init__(
        self,
        paths: PathSettings,
        policy: RetentionSettings,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.paths = paths
        self.policy = policy
        self._clock = clock

    def run_optimization(self) -> OptimizationReport:
        """Compact every category independently; one failure never stops the others."""

        report = OptimizationReport(
            timestamp=to_iso(self._clock()),
            learning=self._guard("learning", self._optimize_learning),
            overseer_log=self._guard("overseer_log", self._optimize_overseer_log),
            history=self._guard("history", self._optimize_history),
            log_files=self._guard("log_files", self._cleanup_log_files),
        )
        logger.info("Retention pass saved %d bytes", report.total_saved_bytes)
        return report

    def storage_stats(self) -> StorageStats:
        return StorageStats(
            data=_list_files(self.paths.data_dir),
            logs=_list_files(self.paths.logs_dir),
        )

    def _guard(self, name: str, step: Callable[[], CategoryReport]) -> CategoryReport:
        try:
            return step()
        except (OSError, ValueError, TypeError, KeyError) as error:
            logger.error("Retention step %s failed: %s", name, error)
            return CategoryReport(action=ACTION_ERROR, details={"error": str(error)})

    def _optimize_learning(self) -> CategoryReport:
        path = self.paths.learning_file
        if not path.is_file():
            return CategoryReport(action=ACTION_SKIPPED, details={"reason": "no file"})

        with locked_document(path):
            data = read_json_object(path) or {}
            size_before = serialized_size(data)
            changes: list[str] = []

            outcomes = list(data.get("outcomes") or [])
            if len(outcomes) > self.policy.max_outcomes:
                excess = len(outcomes) - self.policy.max_outcomes
                weekly = fold_into_weekly_metrics(
                    list(data.get("weekly_metrics") or []),
                    outcomes[:excess],
                )
                data["weekly_metrics"] = weekly[-self.policy.max_weekly_buckets :]
                data["outcomes"] = outcomes[excess:]
                changes.append(f"pruned {excess} old outcomes")

            for key, cap in (
                ("insights", self.policy.max_insights),
                ("adjustments", self.policy.max_adjustments),
            ):
                items = data.get(key) or []
                if len(items) > cap:
                    data[key] = items[-cap:]
                    changes.append(f"pruned {len(items) - cap} old {key}")

            if not changes:
                return CategoryReport(
                    action=ACTION_NO_CHANGES,
                    size_before=size_before,
                    size_after=size_before,
                )
            data["last_optimized"] = to_iso(self._clock())
            atomic_write_json(path, data)
            return CategoryReport(
                action=ACTION_OPTIMIZED,
                size_before=size_before,
                size_after=serialized_size(data),
                details={"changes": changes},
            )

    def _optimize_overseer_log(self) -> CategoryReport:
        path = self.paths.overseer_log_file
        if not path.is_file():
            return CategoryReport(action=ACTION_SKIPPED, details={"reason": "no file"})
        return _trim_report(OverseerJournal(path).trim(self.policy.max_overseer_log))

    def _optimize_history(self) -> CategoryReport:
        path = self.paths.history_file
        if not path.is_file():
            return CategoryReport(action=ACTION_SKIPPED, details={"reason": "no file"})
        return _trim_report(HistoryLog(path).trim(self.policy.max_history))

    def _cleanup_log_files(self) -> CategoryReport:
        logs_dir = self.paths.logs_dir
        if not logs_dir.is_dir():
            return CategoryReport(action=ACTION_SKIPPED, details={"reason": "no logs dir"})

        cutoff = self._clock().timestamp() - self.policy.log_max_age_days * 86_400
        deleted: list[str] = []
        total_size = 0
        freed = 0
        for path in sorted(logs_dir.iterdir()):
            try:
                if not path.is_file():
                    continue
                stat = path.stat()
                total_size += stat.st_size
                if not is_rotated_log(path.name) or stat.st_mtime >= cutoff:
                    continue
                path.unlink()
            except OSError as error:
                logger.warning("Skipping log file %s: %s", path, error)
                continue
            deleted.append(path.name)
            freed += stat.st_size

        details: dict[str, Any] = {
            "deleted": deleted,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "warning": None,
        }
        if total_size > self.policy.log_dir_warning_bytes:
            limit_mb = self.policy.log_dir_warning_bytes // (1024 * 1024)
            details["warning"] = f"Logs exceed {limit_mb}MB"
            logger.warning("Log directory %s exceeds %dMB", logs_dir, limit_mb)
        return CategoryReport(
            action=ACTION_OPTIMIZED if deleted else ACTION_NO_CHANGES,
            size_before=total_size,
            size_after=total_size - freed,
            details=details,
        )


def is_rotated_log(name: str) -> bool:
    return any(pattern.search(name) for pattern in ROTATED_LOG_PATTERNS)


def _trim_report(result: TrimResult) -> CategoryReport:
    return CategoryReport(
        action=ACTION_OPTIMIZED if result.pruned else ACTION_NO_CHANGES,
        size_before=result.size_before,
        size_after=result.size_after,
        details={"pruned": result.pruned, "entries": result.entries},
    )


def _list_files(directory: Path) -> list[FileStat]:
    if not directory.is_dir():
        return []
    stats: list[FileStat] = []
    for path in sorted(directory.iterdir()):
        try:
            if not path.is_file() or path.name.endswith(".lock"):
                continue
            stat = path.stat()
        except OSError:
            continue
        modified = datetime.fromtimestamp(stat.st_mtime, tz=UTC)
        stats.append(FileStat(name=path.name, size=stat.st_size, modified=to_iso(modified)))
    return stats
