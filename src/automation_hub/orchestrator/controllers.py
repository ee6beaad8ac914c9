"""Controllers for run, state, review and learning CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from automation_hub.config import Settings
from automation_hub.logging_setup import configure_logging
from automation_hub.orchestrator.executors import ExecutorRegistry
from automation_hub.orchestrator.gate import can_task_run
from automation_hub.reviews import ReviewNotFoundError
from automation_hub.services import HubServices


@dataclass(slots=True)
class HubRunCommand:
    """CLI input for one orchestrator pass."""

    data_dir: Path | None
    task: str | None = None


@dataclass(slots=True)
class HubStatusCommand:
    data_dir: Path | None


@dataclass(slots=True)
class HubHistoryCommand:
    """CLI input for history listing."""

    data_dir: Path | None
    limit: int
    task: str | None = None


@dataclass(slots=True)
class ReviewAddCommand:
    data_dir: Path | None
    title: str
    task: str | None = None


@dataclass(slots=True)
class ReviewDecisionCommand:
    """CLI input for approve/reject."""

    data_dir: Path | None
    review_id: str
    note: str = ""


class OrchestratorCliController:
    """Thin adapters from CLI commands to hub services, returning printable lines."""

    def run(self, command: HubRunCommand) -> list[str]:
        settings = _settings(command.data_dir)
        configure_logging(settings.paths.logs_dir, settings.log_level)
        services = HubServices.build(settings)
        if command.task is not None and services.registry.get(command.task) is None:
            raise ValueError(f"Unknown task: {command.task}")

        executors = ExecutorRegistry.from_registry(services.registry)
        summary = services.orchestrator(executors).run_all(only=command.task)
        lines = [
            "Run summary: "
            f"ran={summary.ran} skipped={summary.skipped} "
            f"success={summary.success} failed={summary.failed}",
        ]
        for result in summary.results:
            if result.skipped:
                lines.append(f"- {result.task}: skipped ({result.reason})")
            elif result.success:
                lines.append(f"- {result.task}: ok ({result.duration_ms}ms)")
            else:
                lines.append(f"- {result.task}: failed ({result.error})")
        if summary.halted_by_breaker:
            lines.append("Circuit breaker tripped: remaining tasks were not attempted.")
        return lines

    def status(self, command: HubStatusCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        state = services.store.load_state()
        stats = state.global_stats
        lines = [
            f"Last run: {state.last_run or 'never'}",
            "Totals: "
            f"runs={stats.total_runs} success={stats.total_success} "
            f"failure={stats.total_failure}",
        ]
        if not state.tasks:
            lines.append("No task state recorded yet.")
            return lines
        for name in sorted(state.tasks):
            task_state = state.tasks[name]
            marker = " [running]" if task_state.is_running else ""
            lines.append(
                f"- {name}{marker}: today={task_state.today_count} "
                f"runs={task_state.total_runs} ok={task_state.success_count} "
                f"fail={task_state.failure_count} retries={task_state.retry_count} "
                f"last_run={task_state.last_run or '-'}",
            )
            if task_state.last_error:
                lines.append(f"  last_error: {task_state.last_error}")
        return lines

    def tasks(self, command: HubStatusCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        configs = services.registry.all()
        if not configs:
            return [f"No tasks configured in {services.settings.paths.tasks_file}."]

        state = services.store.load_state()
        unresolved = ExecutorRegistry.from_registry(services.registry).validate(
            services.registry,
        )
        now = services.clock()
        lines = [f"Tasks: {len(configs)}"]
        for config in configs:
            if not config.enabled:
                lines.append(f"- {config.name}: disabled")
                continue
            if config.name in unresolved:
                lines.append(f"- {config.name}: invalid ({unresolved[config.name]})")
                continue
            decision = can_task_run(state, config.name, config, now=now)
            label = "ready" if decision.can_run else "blocked"
            lines.append(f"- {config.name}: {label} ({decision.reason})")
        return lines

    def history(self, command: HubHistoryCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        entries = services.history.get_history(command.limit)
        if command.task is not None:
            entries = [entry for entry in entries if entry.task == command.task]
        if not entries:
            return ["No history entries."]
        lines = []
        for entry in entries:
            status = "ok" if entry.success else "failed"
            detail = entry.url or entry.error or entry.output or ""
            lines.append(f"{entry.timestamp} {entry.task} {status} {detail}".rstrip())
        return lines

    def list_reviews(self, command: HubStatusCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        pending = services.reviews.pending()
        if not pending:
            return ["No pending reviews."]
        return [
            f"{review.get('id')} {review.get('created_at')} {review.get('title', '')}"
            for review in pending
        ]

    def add_review(self, command: ReviewAddCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        extra = {"task": command.task} if command.task else {}
        review = services.reviews.add(command.title, **extra)
        return [f"Review added: {review['id']}"]

    def approve_review(self, command: ReviewDecisionCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        try:
            review = services.reviews.approve(command.review_id, notes=command.note)
        except ReviewNotFoundError as error:
            raise ValueError(str(error)) from error
        return [f"Review approved: {review['id']}"]

    def reject_review(self, command: ReviewDecisionCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        try:
            review = services.reviews.reject(command.review_id, reason=command.note)
        except ReviewNotFoundError as error:
            raise ValueError(str(error)) from error
        return [f"Review rejected: {review['id']}"]

    def learning_summary(self, command: HubStatusCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        summary = services.recorder.summary()
        lines = [
            f"Outcomes: {summary['total_outcomes']}",
            f"Recent success rate: {summary['recent_success_rate']}%",
            f"Tasks tracked: {summary['task_count']}",
            f"Weekly buckets: {summary['weekly_buckets']}",
            f"Insights: {summary['insights_count']} "
            f"recommendations: {summary['recommendations_count']}",
        ]
        for issue in summary["top_issues"]:
            lines.append(f"- {issue['type']}: {issue['count']}")
        return lines

    def learning_insights(self, command: HubStatusCommand) -> list[str]:
        services = HubServices.build(_settings(command.data_dir))
        insights, recommendations = services.recorder.generate_insights()
        if not insights and not recommendations:
            return ["No insights yet."]
        lines = [f"[{item['severity']}] {item['message']}" for item in insights]
        lines.extend(f"-> {item['message']}" for item in recommendations)
        return lines


def _settings(data_dir: Path | None) -> Settings:
    settings = Settings.from_env(data_dir=data_dir)
    settings.validate()
    return settings
