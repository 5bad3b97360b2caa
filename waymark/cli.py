"""Waymark CLI - checkpoint commits and metadata for automated sessions."""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from waymark import __version__
from waymark.config import CheckpointConfig, detect_project_root
from waymark.errors import UnknownCategoryError
from waymark.orchestrator import Checkpointer, CheckpointResult
from waymark.policy import CheckpointCategory, CommitOutcome, OutcomeStatus, PushOutcome, parse_category

console = Console()

EXIT_UNKNOWN_CATEGORY = 2


def _configure_logging(verbose: bool) -> None:
    """Route waymark's loggers to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger = logging.getLogger("waymark")
    package_logger.handlers = [handler]
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.propagate = False


class UsageGroup(click.Group):
    """Group that answers unknown commands with the usage text."""

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError:
            click.echo(ctx.get_help())
            ctx.exit(0)


@click.group(cls=UsageGroup, invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--project",
    "project",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project root (default: detected from the current directory)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx, project, verbose):
    """Waymark: checkpoint commits and progress snapshots for dev sessions."""
    _configure_logging(verbose)

    if project is None:
        project = detect_project_root() or Path.cwd()
    ctx.obj = project.resolve()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _checkpointer(project_root: Path) -> Checkpointer:
    return Checkpointer.for_project(project_root)


# =============================================================================
# Output
# =============================================================================


def _print_commit(outcome: CommitOutcome) -> None:
    if outcome.status is OutcomeStatus.DONE:
        first_line = (outcome.commit_message or "").splitlines()[0]
        console.print(f"[green]✓[/green] Committed: {escape(first_line)}")
    elif outcome.status is OutcomeStatus.SKIPPED:
        console.print(f"[dim]Commit skipped: {escape(outcome.reason)}[/dim]")
    else:
        console.print(f"[yellow]⚠ Commit: {escape(outcome.reason)}[/yellow]")


def _print_push(outcome: PushOutcome) -> None:
    if outcome.status is OutcomeStatus.DONE:
        console.print(f"[green]✓[/green] Pushed {outcome.commits_ahead} commit(s)")
    elif outcome.status is OutcomeStatus.SKIPPED:
        console.print(f"[dim]Push skipped: {escape(outcome.reason)}[/dim]")
    else:
        console.print("[yellow]⚠ Push failed, will retry on next checkpoint[/yellow]")


def _print_result(result: CheckpointResult) -> None:
    label = result.category.value
    if result.skipped:
        console.print(f"[dim]Skipped {label} checkpoint: {escape(result.skipped_reason)}[/dim]")
        return

    if result.archive_path is not None:
        console.print(f"[green]✓[/green] Saved {label} checkpoint: {result.archive_path.name}")
    else:
        console.print(f"[yellow]⚠ {label} checkpoint metadata not saved[/yellow]")

    if result.commit is not None:
        _print_commit(result.commit)
    if result.push is not None:
        _print_push(result.push)
    if result.summary:
        console.print()
        console.print(f"[bold]{escape(result.summary)}[/bold]")


def _run_checkpoint(project_root: Path, category: CheckpointCategory, message: str | None) -> None:
    result = _checkpointer(project_root).run(category, message)
    _print_result(result)


# =============================================================================
# Checkpoint commands
# =============================================================================


_CHECKPOINT_COMMANDS = {
    "auto-checkpoint": (CheckpointCategory.AUTO, "Commit if enough files changed (threshold-gated)."),
    "agent-checkpoint": (CheckpointCategory.AGENT, "Checkpoint after agent work (feat(agent):)."),
    "domain-checkpoint": (CheckpointCategory.DOMAIN, "Checkpoint after domain work (feat(domain):)."),
    "security-checkpoint": (CheckpointCategory.SECURITY, "Checkpoint after security work (security:)."),
    "performance-checkpoint": (CheckpointCategory.PERFORMANCE, "Checkpoint after performance work (perf:)."),
    "milestone-checkpoint": (CheckpointCategory.MILESTONE, "Checkpoint a milestone (milestone:)."),
    "session-end": (CheckpointCategory.SESSION_END, "Final checkpoint: commit, push and write a summary."),
}


def _add_checkpoint_command(name: str, category: CheckpointCategory, help_text: str) -> None:
    @main.command(name, help=help_text)
    @click.argument("message", required=False)
    @click.pass_obj
    def _command(project_root, message):
        _run_checkpoint(project_root, category, message)


for _name, (_category, _help) in _CHECKPOINT_COMMANDS.items():
    _add_checkpoint_command(_name, _category, _help)


@main.command("checkpoint")
@click.argument("category")
@click.argument("message", required=False)
@click.pass_obj
def checkpoint_cmd(project_root, category, message):
    """Run a checkpoint by category value (auto, agent, ..., session-end)."""
    try:
        parsed = parse_category(category)
    except UnknownCategoryError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        valid = ", ".join(c.value for c in CheckpointCategory)
        console.print(f"[dim]Valid types: {valid}[/dim]")
        sys.exit(EXIT_UNKNOWN_CATEGORY)

    _run_checkpoint(project_root, parsed, message)


@main.command()
@click.pass_obj
def push(project_root):
    """Push unpushed commits now, ignoring the batch size."""
    _print_push(_checkpointer(project_root).push())


# =============================================================================
# Read-only commands
# =============================================================================


@main.command()
@click.option("--limit", "-n", default=5, type=click.IntRange(min=1), help="Number of checkpoints to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def history(project_root, limit, as_json):
    """Show recent archived checkpoints."""
    entries = _checkpointer(project_root).history(limit=limit)

    if as_json:
        click.echo(json.dumps([{"file": e.path.name, **e.record.to_dict()} for e in entries], indent=2))
        return

    if not entries:
        console.print("[yellow]No checkpoints found.[/yellow]")
        return

    table = Table()
    table.add_column("TIME")
    table.add_column("TYPE")
    table.add_column("BRANCH")
    table.add_column("COMMIT")
    table.add_column("MESSAGE")

    for entry in entries:
        record = entry.record
        message = record.message[:40] + "..." if len(record.message) > 40 else record.message
        table.add_row(
            record.timestamp.replace("T", " ").rstrip("Z"),
            record.type,
            escape(record.branch),
            record.commit_hash,
            escape(message),
        )

    console.print(table)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def status(project_root, as_json):
    """Show the latest checkpoint."""
    record = _checkpointer(project_root).status()

    if record is None:
        if as_json:
            click.echo("null")
        else:
            console.print("[yellow]No checkpoints found.[/yellow]")
        return

    if as_json:
        click.echo(json.dumps(record.to_dict(), indent=2))
        return

    console.print("[bold]Latest checkpoint[/bold]")
    console.print(f"  timestamp: {record.timestamp}")
    console.print(f"  type: {record.type}")
    console.print(f"  message: {escape(record.message)}")
    console.print(f"  commit: {record.commit_hash}")
    console.print(f"  branch: {escape(record.branch)}")
    for label, document in (
        ("progress", record.v3_progress),
        ("performance", record.performance),
        ("security", record.security),
    ):
        shown = escape(json.dumps(document)) if document else "[dim]none[/dim]"
        console.print(f"  {label}: {shown}")


@main.command("config")
@click.pass_obj
def config_cmd(project_root):
    """Show the effective configuration and unpushed commit count."""
    checkpointer = _checkpointer(project_root)
    effective = checkpointer.describe_config()
    defaults = CheckpointConfig().to_dict()

    console.print(f"[bold]Waymark configuration[/bold] [dim]({project_root})[/dim]")
    console.print()
    for key in (
        "auto_commit_enabled",
        "auto_push_enabled",
        "push_batch_size",
        "min_changes_threshold",
        "git_timeout",
    ):
        _show_value(key, effective[key], defaults[key])
    console.print(f"  checkpoint_dir: {effective['checkpoint_dir']}")
    console.print()
    branch = effective["branch"] or "[dim]none[/dim]"
    console.print(f"  branch: {branch}")
    console.print(f"  commits_ahead: {effective['commits_ahead']}")


def _show_value(key: str, value, default):
    """Display a config value, highlighting if non-default."""
    if value != default:
        console.print(f"  {key}: [cyan]{value}[/cyan] [dim](default: {default})[/dim]")
    else:
        console.print(f"  {key}: {value}")


if __name__ == "__main__":
    main()
