"""Controllers for overseer and retention CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from automation_hub.config import Settings
from automation_hub.logging_setup import configure_logging
from automation_hub.services import HubServices

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OverseerStartCommand:
    """CLI input for the long-running overseer."""

    data_dir: Path | None
    max_cycles: int | None = None


@dataclass(slots=True)
class OverseerCommand:
    data_dir: Path | None


class OverseerCliController:
    """Thin adapters from overseer CLI commands to services."""

    def start(self, command: OverseerStartCommand) -> list[str]:
        settings = _settings(command.data_dir)
        configure_logging(settings.paths.logs_dir, settings.log_level)
        overseer = HubServices.build(settings).overseer()
        logger.info("Overseer running every %ss", settings.overseer.check_interval_seconds)
        try:
            overseer.run_forever(max_cycles=command.max_cycles)
        except Exception:
            logger.exception("Overseer terminated on unexpected error")
            raise
        return [
            "Overseer stopped after "
            f"{overseer.state.checks_performed} check(s) in total.",
        ]

    def check(self, command: OverseerCommand) -> list[str]:
        """Run a single health check cycle without starting the loop."""

        overseer = HubServices.build(_settings(command.data_dir)).overseer()
        overseer.state = overseer.load_state()
        overseer.journal.load()
        report = overseer.perform_health_check()
        lines = [
            f"Status: {overseer.state.status.value}",
            f"Issues: {len(report.issues)} actions: {len(report.actions)}",
        ]
        lines.extend(f"- [{issue.type.value}] {issue.message}" for issue in report.issues)
        lines.extend(f"* {action.message}" for action in report.actions)
        lines.extend(f"! check failed: {name}" for name in report.failed_checks)
        return lines

    def status(self, command: OverseerCommand) -> list[str]:
        overseer = HubServices.build(_settings(command.data_dir)).overseer()
        state = overseer.load_state()
        lines = [
            f"Status: {state.status.value}",
            f"Started: {state.started_at or '-'}",
            f"Last check: {state.last_check or '-'}",
            f"Checks performed: {state.checks_performed}",
            f"Auto recovery: {'on' if state.auto_recovery_enabled else 'off'}",
        ]
        summary = state.health_summary or {}
        if summary:
            lines.append(
                "Health: "
                f"{summary.get('status')} success_rate={summary.get('success_rate')}% "
                f"enabled_tasks={summary.get('enabled_tasks')} "
                f"pending_reviews={summary.get('pending_reviews')}",
            )
        for issue in state.current_issues:
            lines.append(f"- [{issue.get('type')}] {issue.get('message')}")
        return lines

    def optimize(self, command: OverseerCommand) -> list[str]:
        settings = _settings(command.data_dir)
        report = HubServices.build(settings).optimizer.run_optimization()
        lines = [f"Saved: {report.total_saved_bytes} bytes"]
        for name, category in report.categories():
            line = f"- {name}: {category.action}"
            if category.size_before or category.size_after:
                line += f" ({category.size_before} -> {category.size_after} bytes)"
            lines.append(line)
            warning = category.details.get("warning")
            if warning:
                lines.append(f"  warning: {warning}")
        return lines

    def storage(self, command: OverseerCommand) -> list[str]:
        stats = HubServices.build(_settings(command.data_dir)).optimizer.storage_stats()
        lines = [f"Total: {round(stats.total_bytes / 1024, 2)} KB"]
        for label, files in (("data", stats.data), ("logs", stats.logs)):
            lines.append(f"{label}:")
            if not files:
                lines.append("  (empty)")
            lines.extend(
                f"  {item.name} {round(item.size / 1024, 2)} KB {item.modified}" for item in files
            )
        return lines


def _settings(data_dir: Path | None) -> Settings:
    settings = Settings.from_env(data_dir=data_dir)
    settings.validate()
    return settings
