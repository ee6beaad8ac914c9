from __future__ import annotations

from pathlib import Path

import allure
import pytest

from automation_hub.config import OverseerSettings, Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_defaults_match_documented_thresholds() -> None:
    settings = Settings()

    assert settings.orchestrator.failure_threshold == 3
    assert settings.overseer.stuck_task_minutes == 30
    assert settings.overseer.stuck_task_reset_minutes == 60
    assert settings.overseer.run_optimization_every == 60
    assert settings.retention.max_outcomes == 500
    assert settings.paths.state_file == Path("data") / "state.json"
    settings.validate()


def test_from_env_reads_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("AUTOMATION_HUB_LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("AUTOMATION_HUB_FAILURE_THRESHOLD", "5")
    monkeypatch.setenv("AUTOMATION_HUB_OVERSEER_STUCK_MINUTES", "10")
    monkeypatch.setenv("AUTOMATION_HUB_OVERSEER_AUTO_RECOVERY", "off")
    monkeypatch.setenv("AUTOMATION_HUB_RETENTION_MAX_HISTORY", "50")
    monkeypatch.setenv("AUTOMATION_HUB_LOG_LEVEL", "debug")

    settings = Settings.from_env(data_dir=tmp_path / "data")

    assert settings.paths.data_dir == tmp_path / "data"
    assert settings.paths.overseer_log_file == tmp_path / "data" / "overseer-log.json"
    assert settings.paths.logs_dir == tmp_path / "logs"
    assert settings.orchestrator.failure_threshold == 5
    assert settings.overseer.stuck_task_minutes == 10
    assert settings.overseer.auto_recovery_enabled is False
    assert settings.retention.max_history == 50
    assert settings.log_level == "DEBUG"


def test_from_env_rejects_invalid_boolean(monkeypatch) -> None:
    monkeypatch.setenv("AUTOMATION_HUB_OVERSEER_AUTO_RECOVERY", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("overseer", "message"),
    [
        (OverseerSettings(check_interval_seconds=0), "CHECK_INTERVAL_SECONDS"),
        (OverseerSettings(stuck_task_minutes=90), "RESET_MINUTES"),
        (OverseerSettings(failure_rate_threshold=1.5), "FAILURE_RATE"),
        (OverseerSettings(run_optimization_every=0), "OPTIMIZE_EVERY"),
    ],
)
def test_validate_rejects_unusable_overseer_settings(overseer, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(overseer=overseer).validate()
