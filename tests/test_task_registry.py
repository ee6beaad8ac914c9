from __future__ import annotations

from pathlib import Path

import allure

from automation_hub.orchestrator.registry import TaskRegistry

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Task Registry"),
]

SAMPLE_REGISTRY = Path(__file__).resolve().parents[1] / "config" / "tasks.yaml"


def test_load_parses_tasks_in_file_order(tmp_path) -> None:
    path = tmp_path / "tasks.yaml"
    path.write_text(
        """
tasks:
  publish:
    command: "echo hi"
    daily_limit: 0
    cooldown_minutes: 15
    channel: "#general"
  report:
    enabled: false
    executor: "reports:Weekly"
    cooldown_hours: 168
  bare:
""",
        "utf-8",
    )

    registry = TaskRegistry.load(path)

    assert [task.name for task in registry.all()] == ["publish", "report", "bare"]
    assert [task.name for task in registry.enabled()] == ["publish", "bare"]
    publish = registry.get("publish")
    assert publish.daily_limit == 0
    assert publish.cooldown_minutes == 15.0
    assert publish.max_retries is None
    assert publish.settings == {"channel": "#general"}
    assert registry.get("report").cooldown_hours == 168.0
    assert registry.get("bare").enabled is True


def test_missing_or_malformed_file_yields_empty_registry(tmp_path) -> None:
    assert len(TaskRegistry.load(tmp_path / "absent.yaml")) == 0

    broken = tmp_path / "broken.yaml"
    broken.write_text("tasks: [1, 2", "utf-8")
    assert len(TaskRegistry.load(broken)) == 0

    wrong_shape = tmp_path / "list.yaml"
    wrong_shape.write_text("tasks:\n  - one\n  - two\n", "utf-8")
    assert len(TaskRegistry.load(wrong_shape)) == 0


def test_bundled_sample_registry_loads() -> None:
    registry = TaskRegistry.load(SAMPLE_REGISTRY)

    assert [task.name for task in registry.enabled()] == ["daily-digest"]
    digest = registry.get("daily-digest")
    assert digest.command == "echo daily digest published"
    assert digest.daily_limit == 1
