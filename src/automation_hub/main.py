"""CLI entrypoint for automation-hub."""

from pathlib import Path

import rich_click as click

from automation_hub import __version__
from automation_hub.orchestrator.controllers import (
    HubHistoryCommand,
    HubRunCommand,
    HubStatusCommand,
    OrchestratorCliController,
    ReviewAddCommand,
    ReviewDecisionCommand,
)
from automation_hub.overseer.controllers import (
    OverseerCliController,
    OverseerCommand,
    OverseerStartCommand,
)

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()
OVERSEER_CONTROLLER = OverseerCliController()

DATA_DIR_OPTION = click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding state, history and log documents.",
)


@click.group()
@click.version_option(version=__version__, prog_name="automation-hub")
def automation_hub() -> None:
    """Automation hub CLI."""


@automation_hub.command("run")
@DATA_DIR_OPTION
@click.option("--task", default=None, help="Run only this task.")
def run(data_dir: Path | None, task: str | None) -> None:
    """Run one pass over the enabled tasks."""

    try:
        lines = ORCHESTRATOR_CONTROLLER.run(HubRunCommand(data_dir=data_dir, task=task))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@automation_hub.command("status")
@DATA_DIR_OPTION
def status(data_dir: Path | None) -> None:
    """Show per-task counters and hub totals."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.status(HubStatusCommand(data_dir=data_dir)))


@automation_hub.command("tasks")
@DATA_DIR_OPTION
def tasks(data_dir: Path | None) -> None:
    """List configured tasks with their admission decision."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.tasks(HubStatusCommand(data_dir=data_dir)))


@automation_hub.command("history")
@DATA_DIR_OPTION
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
    help="How many recent entries to print.",
)
@click.option("--task", default=None, help="Only show entries for this task.")
def history(data_dir: Path | None, limit: int, task: str | None) -> None:
    """Show recent executions, most recent first."""

    _emit_lines(
        ORCHESTRATOR_CONTROLLER.history(
            HubHistoryCommand(data_dir=data_dir, limit=limit, task=task),
        ),
    )


@automation_hub.group()
def overseer() -> None:
    """Overseer monitor commands."""


@overseer.command("start")
@DATA_DIR_OPTION
@click.option(
    "--max-cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many checks (default: run until SIGINT/SIGTERM).",
)
def overseer_start(data_dir: Path | None, max_cycles: int | None) -> None:
    """Run the overseer loop in the foreground."""

    try:
        lines = OVERSEER_CONTROLLER.start(
            OverseerStartCommand(data_dir=data_dir, max_cycles=max_cycles),
        )
    except Exception as error:
        raise click.ClickException(f"Overseer crashed: {error}") from error
    _emit_lines(lines)


@overseer.command("check")
@DATA_DIR_OPTION
def overseer_check(data_dir: Path | None) -> None:
    """Run a single health check cycle."""

    _emit_lines(OVERSEER_CONTROLLER.check(OverseerCommand(data_dir=data_dir)))


@overseer.command("status")
@DATA_DIR_OPTION
def overseer_status(data_dir: Path | None) -> None:
    """Show the last persisted overseer snapshot."""

    _emit_lines(OVERSEER_CONTROLLER.status(OverseerCommand(data_dir=data_dir)))


@automation_hub.command("optimize")
@DATA_DIR_OPTION
def optimize(data_dir: Path | None) -> None:
    """Run the retention pass now."""

    _emit_lines(OVERSEER_CONTROLLER.optimize(OverseerCommand(data_dir=data_dir)))


@automation_hub.command("storage")
@DATA_DIR_OPTION
def storage(data_dir: Path | None) -> None:
    """Show sizes of data and log files."""

    _emit_lines(OVERSEER_CONTROLLER.storage(OverseerCommand(data_dir=data_dir)))


@automation_hub.group()
def review() -> None:
    """Review queue commands."""


@review.command("list")
@DATA_DIR_OPTION
def review_list(data_dir: Path | None) -> None:
    """List pending reviews."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.list_reviews(HubStatusCommand(data_dir=data_dir)))


@review.command("add")
@DATA_DIR_OPTION
@click.argument("title")
@click.option("--task", default=None, help="Task that produced the item.")
def review_add(data_dir: Path | None, title: str, task: str | None) -> None:
    """Queue an item for human review."""

    _emit_lines(
        ORCHESTRATOR_CONTROLLER.add_review(
            ReviewAddCommand(data_dir=data_dir, title=title, task=task),
        ),
    )


@review.command("approve")
@DATA_DIR_OPTION
@click.argument("review_id")
@click.option("--notes", default="", help="Approval notes.")
def review_approve(data_dir: Path | None, review_id: str, notes: str) -> None:
    """Approve a pending review."""

    try:
        lines = ORCHESTRATOR_CONTROLLER.approve_review(
            ReviewDecisionCommand(data_dir=data_dir, review_id=review_id, note=notes),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@review.command("reject")
@DATA_DIR_OPTION
@click.argument("review_id")
@click.option("--reason", default="", help="Why the item was rejected.")
def review_reject(data_dir: Path | None, review_id: str, reason: str) -> None:
    """Reject a pending review."""

    try:
        lines = ORCHESTRATOR_CONTROLLER.reject_review(
            ReviewDecisionCommand(data_dir=data_dir, review_id=review_id, note=reason),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@automation_hub.group()
def learning() -> None:
    """Learning loop commands."""


@learning.command("summary")
@DATA_DIR_OPTION
def learning_summary(data_dir: Path | None) -> None:
    """Show recorded outcome statistics."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.learning_summary(HubStatusCommand(data_dir=data_dir)))


@learning.command("insights")
@DATA_DIR_OPTION
def learning_insights(data_dir: Path | None) -> None:
    """Regenerate insights and recommendations."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.learning_insights(HubStatusCommand(data_dir=data_dir)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    automation_hub()
