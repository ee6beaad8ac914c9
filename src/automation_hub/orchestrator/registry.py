"""Task registry loaded from ``tasks.yaml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskConfig:
    """One registry entry. Limits left as ``None`` fall back to gate defaults."""

    name: str
    enabled: bool = True
    schedule: str | None = None
    daily_limit: int | None = None
    cooldown_minutes: float | None = None
    cooldown_hours: float | None = None
    max_retries: int | None = None
    category: str | None = None
    description: str | None = None
    executor: str | None = None
    command: str | None = None
    timeout_seconds: float | None = None
    settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> TaskConfig:
        known = {
            "enabled",
            "schedule",
            "daily_limit",
            "cooldown_minutes",
            "cooldown_hours",
            "max_retries",
            "category",
            "description",
            "executor",
            "command",
            "timeout_seconds",
            "settings",
        }
        settings = dict(raw.get("settings") or {})
        # Unknown keys are task-specific options handed through to the executor.
        settings.update({key: value for key, value in raw.items() if key not in known})
        return cls(
            name=name,
            enabled=bool(raw.get("enabled", True)),
            schedule=_optional_str(raw.get("schedule")),
            daily_limit=_optional_int(raw.get("daily_limit")),
            cooldown_minutes=_optional_float(raw.get("cooldown_minutes")),
            cooldown_hours=_optional_float(raw.get("cooldown_hours")),
            max_retries=_optional_int(raw.get("max_retries")),
            category=_optional_str(raw.get("category")),
            description=_optional_str(raw.get("description")),
            executor=_optional_str(raw.get("executor")),
            command=_optional_str(raw.get("command")),
            timeout_seconds=_optional_float(raw.get("timeout_seconds")),
            settings=settings,
        )


class TaskRegistry:
    """Read-only view over the configured tasks, in file order."""

    def __init__(self, tasks: dict[str, TaskConfig] | None = None) -> None:
        self._tasks = dict(tasks or {})

    @classmethod
    def load(cls, path: Path) -> TaskRegistry:
        """Parse the registry file; unreadable input yields an empty registry."""

        try:
            payload = yaml.safe_load(path.read_text("utf-8")) or {}
            if not isinstance(payload, dict):
                raise TypeError(f"Expected mapping at top level of {path}")
            raw_tasks = payload.get("tasks") or {}
            if not isinstance(raw_tasks, dict):
                raise TypeError(f"Expected 'tasks' mapping in {path}")
            tasks = {
                str(name): TaskConfig.from_dict(str(name), raw or {})
                for name, raw in raw_tasks.items()
                if raw is None or isinstance(raw, dict)
            }
        except (OSError, yaml.YAMLError, TypeError, ValueError) as error:
            logger.error("Failed to load task registry %s: %s", path, error)
            return cls()
        return cls(tasks)

    def get(self, name: str) -> TaskConfig | None:
        return self._tasks.get(name)

    def all(self) -> list[TaskConfig]:
        return list(self._tasks.values())

    def enabled(self) -> list[TaskConfig]:
        return [task for task in self._tasks.values() if task.enabled]

    def __len__(self) -> int:
        return len(self._tasks)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)  # type: ignore[arg-type]


def _optional_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)  # type: ignore[arg-type]
