"""Outcome recording and pattern analysis for self-tuning."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from automation_hub.storage import (
    Clock,
    atomic_write_json,
    locked_document,
    read_json_object,
    to_iso,
    utc_now,
)

logger = logging.getLogger(__name__)

LEARNING_SCHEMA_VERSION = "1.0"
MAX_RECORDED_OUTCOMES = 1000
MAX_ADJUSTMENTS = 100
MIN_RUNS_FOR_HOURLY_STATS = 3
MIN_RUNS_FOR_SUCCESS_INSIGHT = 5
LOW_SUCCESS_RATE = 70.0
TIMING_GAP_PERCENT = 20.0
RECURRING_ERROR_COUNT = 5

_ERROR_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("timeout", ("timeout", "timed out")),
    ("network", ("network", "fetch", "connection")),
    ("auth", ("auth", "401", "403")),
    ("rate_limit", ("rate limit", "429")),
    ("not_found", ("not found", "404")),
    ("parse_error", ("parse", "json")),
    ("memory", ("memory", "heap")),
    ("ui_element", ("selector", "element")),
)

_ERROR_FIXES = {
    "timeout": ("config", "Increase timeout or add retry logic"),
    "network": ("retry", "Add network retry with exponential backoff"),
    "auth": ("credentials", "Check and refresh authentication credentials"),
    "rate_limit": ("throttle", "Add rate limiting or increase delays between requests"),
    "parse_error": ("validation", "Add input validation and error handling"),
    "ui_element": ("selector", "Update selectors, the UI may have changed"),
    "memory": ("optimization", "Optimize memory usage or increase limits"),
}


def categorize_error(error: str) -> str:
    """Bucket an error message into a coarse error type."""

    lowered = error.lower()
    for error_type, keywords in _ERROR_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return error_type
    return "unknown"


def default_learning_document(created_at: str) -> dict[str, Any]:
    return {
        "version": LEARNING_SCHEMA_VERSION,
        "created_at": created_at,
        "last_updated": None,
        "outcomes": [],
        "task_patterns": {},
        "time_patterns": {"by_hour": {}, "by_day_of_week": {}},
        "error_patterns": {},
        "insights": [],
        "recommendations": [],
        "weekly_metrics": [],
        "adjustments": [],
    }


@dataclass(slots=True)
class OutcomeRecord:
    """Outcome reported by the orchestrator after each attempted run."""

    task: str
    success: bool
    duration_ms: int | None = None
    output: str | None = None
    url: str | None = None
    error: str | None = None
    category: str | None = None
    content_type: str | None = None
    metrics: dict[str, Any] = field(default_factory=dict)


class LearningRecorder:
    """Persist outcomes to ``learning.json`` and derive patterns and insights."""

    def __init__(self, path: Path, *, clock: Clock = utc_now) -> None:
        self.path = path
        self._clock = clock

    def load(self) -> dict[str, Any]:
        try:
            payload = read_json_object(self.path)
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to load learning data %s: %s", self.path, error)
            payload = None
        return self._with_defaults(payload)

    def record_outcome(self, outcome: OutcomeRecord) -> dict[str, Any]:
        """Append one outcome and fold it into the aggregate patterns."""

        now = self._clock()
        record: dict[str, Any] = {
            "id": f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}",
            "timestamp": to_iso(now),
            "task": outcome.task,
            "success": outcome.success,
            "hour": now.hour,
            # Sunday is day 0.
            "day_of_week": (now.weekday() + 1) % 7,
            "duration_ms": outcome.duration_ms,
            "error": outcome.error,
            "error_type": categorize_error(outcome.error) if outcome.error else None,
            "output": {
                "content_length": len(outcome.output) if outcome.output else None,
                "has_url": bool(outcome.url),
                "custom_metrics": dict(outcome.metrics),
            },
            "context": {"category": outcome.category, "content_type": outcome.content_type},
        }

        def _apply(data: dict[str, Any]) -> None:
            outcomes = data["outcomes"]
            outcomes.append(record)
            if len(outcomes) > MAX_RECORDED_OUTCOMES:
                data["outcomes"] = outcomes[-MAX_RECORDED_OUTCOMES:]
            _update_patterns(data, record)

        self._mutate(_apply)
        return record

    def record_adjustment(self, adjustment: dict[str, Any]) -> None:
        entry = {"timestamp": to_iso(self._clock()), **adjustment}

        def _apply(data: dict[str, Any]) -> None:
            data["adjustments"].append(entry)
            if len(data["adjustments"]) > MAX_ADJUSTMENTS:
                data["adjustments"] = data["adjustments"][-MAX_ADJUSTMENTS:]

        self._mutate(_apply)

    def generate_insights(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Recompute insights and recommendations from the stored patterns."""

        result: dict[str, list[dict[str, Any]]] = {}

        def _apply(data: dict[str, Any]) -> None:
            insights, recommendations = _build_insights(data)
            data["insights"] = insights
            data["recommendations"] = recommendations
            data["last_insight_generation"] = to_iso(self._clock())
            result["insights"] = insights
            result["recommendations"] = recommendations

        self._mutate(_apply)
        return result.get("insights", []), result.get("recommendations", [])

    def summary(self) -> dict[str, Any]:
        data = self.load()
        recent = data["outcomes"][-100:]
        successes = sum(1 for outcome in recent if outcome.get("success"))
        top_issues = sorted(
            data["error_patterns"].items(),
            key=lambda item: item[1].get("count", 0),
            reverse=True,
        )[:3]
        return {
            "total_outcomes": len(data["outcomes"]),
            "recent_success_rate": round(successes / len(recent) * 100, 1) if recent else 0.0,
            "insights_count": len(data["insights"]),
            "recommendations_count": len(data["recommendations"]),
            "top_issues": [
                {"type": error_type, "count": pattern.get("count", 0)}
                for error_type, pattern in top_issues
            ],
            "task_count": len(data["task_patterns"]),
            "weekly_buckets": len(data["weekly_metrics"]),
            "last_updated": data.get("last_updated"),
            "last_insight_generation": data.get("last_insight_generation"),
        }

    def _mutate(self, apply: Callable[[dict[str, Any]], None]) -> None:
        try:
            with locked_document(self.path):
                data = self._with_defaults(read_json_object(self.path))
                apply(data)
                data["last_updated"] = to_iso(self._clock())
                atomic_write_json(self.path, data)
        except (OSError, ValueError, TypeError) as error:
            logger.error("Failed to update learning data %s: %s", self.path, error)

    def _with_defaults(self, payload: dict[str, Any] | None) -> dict[str, Any]:
        data = default_learning_document(to_iso(self._clock()))
        if payload:
            data.update(payload)
        time_patterns = data.get("time_patterns") or {}
        time_patterns.setdefault("by_hour", {})
        time_patterns.setdefault("by_day_of_week", {})
        data["time_patterns"] = time_patterns
        return data


def _bump(bucket: dict[str, Any], key: str, success: bool) -> None:
    stats = bucket.setdefault(key, {"runs": 0, "successes": 0})
    stats["runs"] += 1
    if success:
        stats["successes"] += 1


def _update_patterns(data: dict[str, Any], record: dict[str, Any]) -> None:
    task = record["task"]
    success = record["success"]
    error_type = record["error_type"]
    duration = record["duration_ms"]

    pattern = data["task_patterns"].setdefault(
        task,
        {
            "total_runs": 0,
            "successes": 0,
            "failures": 0,
            "avg_duration_ms": 0.0,
            "error_types": {},
            "best_hour": None,
            "worst_hour": None,
            "hourly_stats": {},
        },
    )
    pattern["total_runs"] += 1
    if success:
        pattern["successes"] += 1
    else:
        pattern["failures"] += 1
        if error_type:
            pattern["error_types"][error_type] = pattern["error_types"].get(error_type, 0) + 1

    if duration:
        runs = pattern["total_runs"]
        pattern["avg_duration_ms"] = (pattern["avg_duration_ms"] * (runs - 1) + duration) / runs

    _bump(pattern["hourly_stats"], str(record["hour"]), success)
    best_rate, worst_rate = -1.0, 101.0
    for hour, stats in pattern["hourly_stats"].items():
        if stats["runs"] < MIN_RUNS_FOR_HOURLY_STATS:
            continue
        rate = stats["successes"] / stats["runs"] * 100
        if rate > best_rate:
            best_rate, pattern["best_hour"] = rate, int(hour)
        if rate < worst_rate:
            worst_rate, pattern["worst_hour"] = rate, int(hour)

    _bump(data["time_patterns"]["by_hour"], str(record["hour"]), success)
    _bump(data["time_patterns"]["by_day_of_week"], str(record["day_of_week"]), success)

    if error_type:
        errors = data["error_patterns"].setdefault(
            error_type,
            {"count": 0, "tasks": {}, "last_seen": None},
        )
        errors["count"] += 1
        errors["tasks"][task] = errors["tasks"].get(task, 0) + 1
        errors["last_seen"] = record["timestamp"]


def _build_insights(
    data: dict[str, Any],
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    insights: list[dict[str, Any]] = []
    recommendations: list[dict[str, Any]] = []

    for task, pattern in data["task_patterns"].items():
        runs = pattern.get("total_runs", 0)
        success_rate = round(pattern.get("successes", 0) / runs * 100, 1) if runs else 0.0
        if runs >= MIN_RUNS_FOR_SUCCESS_INSIGHT and success_rate < LOW_SUCCESS_RATE:
            insights.append(
                {
                    "type": "low_success_rate",
                    "severity": "high" if success_rate < 50 else "medium",
                    "task": task,
                    "message": (
                        f"{task} has {success_rate}% success rate "
                        f"({pattern.get('successes', 0)}/{runs})"
                    ),
                    "data": {"success_rate": success_rate, "runs": runs},
                },
            )
            error_types = pattern.get("error_types") or {}
            if error_types:
                top_error, occurrences = max(error_types.items(), key=lambda item: item[1])
                fix_type, suggestion = _ERROR_FIXES.get(
                    top_error,
                    ("investigate", "Manual investigation needed"),
                )
                recommendations.append(
                    {
                        "task": task,
                        "type": "fix_error",
                        "priority": "high",
                        "message": f"Fix {top_error} errors in {task} ({occurrences} occurrences)",
                        "action": {"type": fix_type, "suggestion": suggestion},
                    },
                )

        best_hour, worst_hour = pattern.get("best_hour"), pattern.get("worst_hour")
        if best_hour is None or worst_hour is None or best_hour == worst_hour:
            continue
        best = pattern["hourly_stats"].get(str(best_hour))
        worst = pattern["hourly_stats"].get(str(worst_hour))
        if not best or not worst:
            continue
        best_rate = round(best["successes"] / best["runs"] * 100)
        worst_rate = round(worst["successes"] / worst["runs"] * 100)
        if best_rate - worst_rate > TIMING_GAP_PERCENT:
            insights.append(
                {
                    "type": "timing_pattern",
                    "severity": "low",
                    "task": task,
                    "message": (
                        f"{task} performs better at {format_hour(best_hour)} ({best_rate}%) "
                        f"than {format_hour(worst_hour)} ({worst_rate}%)"
                    ),
                    "data": {"best_hour": best_hour, "worst_hour": worst_hour},
                },
            )
            recommendations.append(
                {
                    "task": task,
                    "type": "schedule_change",
                    "priority": "low",
                    "message": f"Consider scheduling {task} at {format_hour(best_hour)} instead",
                    "action": {"type": "reschedule", "hour": best_hour},
                },
            )

    for error_type, pattern in data["error_patterns"].items():
        count = pattern.get("count", 0)
        if count >= RECURRING_ERROR_COUNT:
            insights.append(
                {
                    "type": "recurring_error",
                    "severity": "high" if count >= 10 else "medium",
                    "message": f"{error_type} errors occurred {count} times across tasks",
                    "data": {
                        "error_type": error_type,
                        "count": count,
                        "tasks": sorted(pattern.get("tasks", {})),
                    },
                },
            )

    return insights, recommendations


def format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour == 12:
        return "12 PM"
    if hour > 12:
        return f"{hour - 12} PM"
    return f"{hour} AM"
