"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from automation_hub.config import PathSettings, Settings


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 4, 12, 0, tzinfo=UTC))


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        paths=PathSettings(
            data_dir=tmp_path / "data",
            logs_dir=tmp_path / "logs",
            tasks_file=tmp_path / "tasks.yaml",
        ),
    )


@pytest.fixture()
def hub_env(tmp_path, monkeypatch):
    """Point the CLI at a temp workspace and keep log handlers off the root logger."""

    monkeypatch.setenv("AUTOMATION_HUB_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("AUTOMATION_HUB_LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("AUTOMATION_HUB_TASKS_FILE", str(tmp_path / "tasks.yaml"))
    monkeypatch.setattr(
        "automation_hub.orchestrator.controllers.configure_logging",
        lambda *args, **kwargs: None,
    )
    monkeypatch.setattr(
        "automation_hub.overseer.controllers.configure_logging",
        lambda *args, **kwargs: None,
    )
    return tmp_path
