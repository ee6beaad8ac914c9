from __future__ import annotations

import json

import allure
import pytest

from automation_hub.state.history import HistoryLog
from automation_hub.state.models import TaskResult

pytestmark = [
    allure.epic("Execution State"),
    allure.feature("History Log"),
]


def test_add_entry_keeps_only_most_recent_entries(tmp_path, clock) -> None:
    history = HistoryLog(tmp_path / "history.json", max_entries=3, clock=clock)

    for index in range(5):
        history.add_entry(f"task-{index}", True)
        clock.advance(minutes=1)

    stored = json.loads((tmp_path / "history.json").read_text("utf-8"))["entries"]
    assert [entry["task"] for entry in stored] == ["task-2", "task-3", "task-4"]


def test_get_history_returns_most_recent_first_and_honours_limit(tmp_path, clock) -> None:
    history = HistoryLog(tmp_path / "history.json", clock=clock)
    for index in range(4):
        history.add_entry(f"task-{index}", index % 2 == 0, TaskResult(duration_ms=index))
        clock.advance(minutes=1)

    recent = history.get_history(limit=2)

    assert [entry.task for entry in recent] == ["task-3", "task-2"]
    assert recent[0].success is False
    assert recent[1].duration_ms == 2
    assert history.get_history(limit=0) == []


def test_entry_omits_absent_optional_fields(tmp_path, clock) -> None:
    history = HistoryLog(tmp_path / "history.json", clock=clock)

    history.add_entry("digest", False, TaskResult(error="network down"))

    stored = json.loads((tmp_path / "history.json").read_text("utf-8"))["entries"][0]
    assert stored["error"] == "network down"
    assert "output" not in stored
    assert "url" not in stored


def test_reads_legacy_bare_array_document(tmp_path, clock) -> None:
    path = tmp_path / "history.json"
    path.write_text(
        json.dumps([{"task": "old", "timestamp": "2026-01-01T00:00:00+00:00", "success": True}]),
        "utf-8",
    )
    history = HistoryLog(path, clock=clock)

    history.add_entry("new", True)

    assert [entry.task for entry in history.get_history()] == ["new", "old"]


def test_corrupt_document_degrades_to_empty_history(tmp_path, clock) -> None:
    path = tmp_path / "history.json"
    path.write_text("[oops", "utf-8")
    history = HistoryLog(path, clock=clock)

    assert history.get_history() == []
    # Writing never raises even though the existing document cannot be parsed.
    entry = history.add_entry("digest", True)
    assert entry.task == "digest"


def test_trim_reports_pruned_entries_and_propagates_errors(tmp_path, clock) -> None:
    history = HistoryLog(tmp_path / "history.json", clock=clock)
    for index in range(6):
        history.add_entry(f"task-{index}", True, TaskResult(output="x" * 20))

    result = history.trim(2)

    assert result.pruned == 4
    assert result.entries == 2
    assert result.size_after < result.size_before
    assert [entry.task for entry in history.get_history()] == ["task-5", "task-4"]

    (tmp_path / "history.json").write_text('{"entries": 3}', "utf-8")
    with pytest.raises(TypeError):
        history.trim(2)
