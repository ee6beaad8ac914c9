"""Runtime configuration for the orchestrator, overseer and retention pass."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class PathSettings:
    """Locations of every persisted document."""

    data_dir: Path = Path("data")
    logs_dir: Path = Path("logs")
    tasks_file: Path = Path("config/tasks.yaml")

    @property
    def state_file(self) -> Path:
        return self.data_dir / "state.json"

    @property
    def history_file(self) -> Path:
        return self.data_dir / "history.json"

    @property
    def overseer_state_file(self) -> Path:
        return self.data_dir / "overseer-state.json"

    @property
    def overseer_log_file(self) -> Path:
        return self.data_dir / "overseer-log.json"

    @property
    def learning_file(self) -> Path:
        return self.data_dir / "learning.json"

    @property
    def reviews_file(self) -> Path:
        return self.data_dir / "reviews.json"


@dataclass(slots=True)
class OrchestratorSettings:
    """Run-loop settings."""

    failure_threshold: int = 3
    history_max_entries: int = 500


@dataclass(slots=True)
class OverseerSettings:
    """Health-check thresholds and loop cadence."""

    check_interval_seconds: float = 60.0
    stuck_task_minutes: int = 30
    stuck_task_reset_minutes: int = 60
    missed_schedule_grace_hours: float = 2.0
    default_cooldown_hours: float = 24.0
    review_alert_hours: float = 24.0
    large_review_queue: int = 5
    failure_rate_threshold: float = 0.5
    failure_rate_window: int = 20
    failure_rate_min_sample: int = 5
    no_activity_hours: float = 6.0
    health_summary_window: int = 50
    run_optimization_every: int = 60
    auto_recovery_enabled: bool = True
    max_log_entries: int = 500


@dataclass(slots=True)
class RetentionSettings:
    """Caps enforced by the data optimizer."""

    max_outcomes: int = 500
    max_insights: int = 50
    max_adjustments: int = 100
    max_weekly_buckets: int = 52
    max_overseer_log: int = 200
    max_history: int = 200
    log_max_age_days: int = 7
    log_dir_warning_bytes: int = 10 * 1024 * 1024


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    paths: PathSettings = field(default_factory=PathSettings)
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    overseer: OverseerSettings = field(default_factory=OverseerSettings)
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, data_dir: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            paths=PathSettings(
                data_dir=data_dir or Path(os.getenv("AUTOMATION_HUB_DATA_DIR", "data")),
                logs_dir=Path(os.getenv("AUTOMATION_HUB_LOGS_DIR", "logs")),
                tasks_file=Path(os.getenv("AUTOMATION_HUB_TASKS_FILE", "config/tasks.yaml")),
            ),
            orchestrator=OrchestratorSettings(
                failure_threshold=int(os.getenv("AUTOMATION_HUB_FAILURE_THRESHOLD", "3")),
                history_max_entries=int(os.getenv("AUTOMATION_HUB_HISTORY_MAX_ENTRIES", "500")),
            ),
            overseer=OverseerSettings(
                check_interval_seconds=float(
                    os.getenv("AUTOMATION_HUB_OVERSEER_CHECK_INTERVAL_SECONDS", "60"),
                ),
                stuck_task_minutes=int(os.getenv("AUTOMATION_HUB_OVERSEER_STUCK_MINUTES", "30")),
                stuck_task_reset_minutes=int(
                    os.getenv("AUTOMATION_HUB_OVERSEER_RESET_MINUTES", "60"),
                ),
                missed_schedule_grace_hours=float(
                    os.getenv("AUTOMATION_HUB_OVERSEER_MISSED_GRACE_HOURS", "2"),
                ),
                default_cooldown_hours=float(
                    os.getenv("AUTOMATION_HUB_OVERSEER_DEFAULT_COOLDOWN_HOURS", "24"),
                ),
                review_alert_hours=float(
                    os.getenv("AUTOMATION_HUB_OVERSEER_REVIEW_ALERT_HOURS", "24"),
                ),
                large_review_queue=int(os.getenv("AUTOMATION_HUB_OVERSEER_LARGE_QUEUE", "5")),
                failure_rate_threshold=float(
                    os.getenv("AUTOMATION_HUB_OVERSEER_FAILURE_RATE", "0.5"),
                ),
                no_activity_hours=float(
                    os.getenv("AUTOMATION_HUB_OVERSEER_NO_ACTIVITY_HOURS", "6"),
                ),
                run_optimization_every=int(
                    os.getenv("AUTOMATION_HUB_OVERSEER_OPTIMIZE_EVERY", "60"),
                ),
                auto_recovery_enabled=_env_bool(
                    "AUTOMATION_HUB_OVERSEER_AUTO_RECOVERY",
                    default=True,
                ),
            ),
            retention=RetentionSettings(
                max_outcomes=int(os.getenv("AUTOMATION_HUB_RETENTION_MAX_OUTCOMES", "500")),
                max_overseer_log=int(os.getenv("AUTOMATION_HUB_RETENTION_MAX_OVERSEER_LOG", "200")),
                max_history=int(os.getenv("AUTOMATION_HUB_RETENTION_MAX_HISTORY", "200")),
                log_max_age_days=int(os.getenv("AUTOMATION_HUB_RETENTION_LOG_MAX_AGE_DAYS", "7")),
            ),
            log_level=os.getenv("AUTOMATION_HUB_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the loops cannot work with."""

        if self.orchestrator.failure_threshold <= 0:
            raise ValueError("AUTOMATION_HUB_FAILURE_THRESHOLD must be > 0.")
        if self.overseer.check_interval_seconds <= 0:
            raise ValueError("AUTOMATION_HUB_OVERSEER_CHECK_INTERVAL_SECONDS must be > 0.")
        if self.overseer.stuck_task_reset_minutes < self.overseer.stuck_task_minutes:
            raise ValueError(
                "AUTOMATION_HUB_OVERSEER_RESET_MINUTES must be >= "
                "AUTOMATION_HUB_OVERSEER_STUCK_MINUTES.",
            )
        if not 0 <= self.overseer.failure_rate_threshold <= 1:
            raise ValueError("AUTOMATION_HUB_OVERSEER_FAILURE_RATE must be within [0, 1].")
        if self.overseer.run_optimization_every <= 0:
            raise ValueError("AUTOMATION_HUB_OVERSEER_OPTIMIZE_EVERY must be > 0.")
        if self.retention.log_max_age_days < 0:
            raise ValueError("AUTOMATION_HUB_RETENTION_LOG_MAX_AGE_DAYS must be >= 0.")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
