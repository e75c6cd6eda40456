"""restorepoint CLI - checkpoints for a project directory."""

import sys
from typing import NoReturn
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from restorepoint import __version__
from restorepoint.changelog import CODE_CHANGE, JsonChangelog
from restorepoint.config import (
    CHANGELOG_FILENAME,
    detect_project_root,
    get_config,
    get_snapshots_dir,
    get_store_dir,
)
from restorepoint.errors import RestorePointError, format_error
from restorepoint.logging import configure_logging

console = Console()


def _project_root(ctx: click.Context) -> Path:
    return ctx.obj["project"]


def _changelog(ctx: click.Context) -> JsonChangelog:
    return JsonChangelog(get_store_dir(_project_root(ctx)) / CHANGELOG_FILENAME)


def _fail(error: RestorePointError) -> NoReturn:
    # Paths in the error context may contain [brackets]
    console.print(f"[red]{escape(format_error(error))}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--project",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project directory (default: detected from the current directory)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx, project, verbose):
    """restorepoint: local checkpoints you can always roll back to."""
    configure_logging(verbose)
    if project is None:
        project = detect_project_root() or Path.cwd()
    ctx.ensure_object(dict)
    ctx.obj["project"] = Path(project).resolve()


@main.command()
@click.option("--no-gitignore", is_flag=True, help="Do not add the store to .gitignore")
@click.option("--no-initial", is_flag=True, help="Do not take an initial checkpoint")
@click.pass_context
def init(ctx, no_gitignore, no_initial):
    """Initialize restorepoint in the project."""
    from restorepoint.checkpoint import setup_project

    root = _project_root(ctx)
    result = setup_project(root, update_gitignore=not no_gitignore, create_initial=not no_initial)
    if result.is_err():
        _fail(result.unwrap_err())

    outcome = result.unwrap()
    console.print(f"[green]✓[/green] Initialized store: {outcome.store_dir}")
    if outcome.gitignore_updated:
        console.print("  Added store to .gitignore")
    if outcome.initial_checkpoint:
        console.print(f"  Initial checkpoint: {outcome.initial_checkpoint}")


@main.command()
@click.option("--name", "-n", help="Name prefix for the checkpoint")
@click.option("--description", "-d", help="What this checkpoint captures")
@click.option("--full", is_flag=True, help="Force a full snapshot, ignoring cooldown and no-change checks")
@click.pass_context
def create(ctx, name, description, full):
    """Create a checkpoint of the tracked files."""
    from restorepoint.checkpoint import create_checkpoint

    result = create_checkpoint(_project_root(ctx), name=name, description=description, force_full=full)
    if result.is_err():
        _fail(result.unwrap_err())

    outcome = result.unwrap()
    if not outcome.created:
        console.print(f"[yellow]{outcome.message}[/yellow]")
        return

    cp = outcome.checkpoint
    console.print(f"[green]✓[/green] Created {cp.kind.value.lower()} checkpoint: {cp.name}")
    console.print(f"  Files: {cp.file_count}  Changed: {cp.files_changed}  Stored: {cp.size}")


@main.command("list")
@click.option("--limit", "-n", type=int, default=None, help="Number of checkpoints to show")
@click.pass_context
def list_command(ctx, limit):
    """List checkpoints, newest first."""
    from restorepoint.checkpoint import list_checkpoints

    summaries = list_checkpoints(_project_root(ctx), limit=limit)

    if not summaries:
        console.print("[yellow]No checkpoints found.[/yellow]")
        console.print("Create one with: restorepoint create")
        return

    table = Table()
    table.add_column("NAME")
    table.add_column("KIND")
    table.add_column("FILES", justify="right")
    table.add_column("CHANGED", justify="right")
    table.add_column("STORED", justify="right")
    table.add_column("CREATED")
    table.add_column("DESCRIPTION")

    for cp in summaries:
        description = cp.description[:40] + "..." if len(cp.description) > 40 else cp.description
        table.add_row(
            cp.name,
            cp.kind.value,
            str(cp.file_count),
            str(cp.files_changed),
            cp.size,
            cp.timestamp[:19].replace("T", " "),
            description,
        )

    console.print(table)


@main.command()
@click.argument("name")
@click.option("--dry-run", is_flag=True, help="Show what would be restored")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def restore(ctx, name, dry_run, yes):
    """Restore the project to checkpoint NAME (exact or unique partial name)."""
    from restorepoint.checkpoint import restore_checkpoint

    root = _project_root(ctx)

    if dry_run:
        result = restore_checkpoint(root, name, dry_run=True)
        if result.is_err():
            _fail(result.unwrap_err())
        plan = result.unwrap()
        console.print(f"[bold]Would restore:[/bold] {plan.target} ({plan.kind.value})")
        console.print(f"  Strategy: {plan.strategy}, chain length {plan.chain_length}")
        for link in plan.chain:
            console.print(f"  [dim]├─ {link}[/dim]")
        return

    if not yes:
        if not click.confirm(f"Restore '{name}'? Current files are backed up first."):
            console.print("Cancelled.")
            return

    result = restore_checkpoint(root, name)
    if result.is_err():
        _fail(result.unwrap_err())

    outcome = result.unwrap()
    console.print(f"[green]✓[/green] Restored: {outcome.restored_name}")
    if outcome.emergency_backup_name:
        console.print(f"  Emergency backup: {outcome.emergency_backup_name}")
    console.print(f"  Written: {outcome.files_written}  Deleted: {outcome.files_deleted}")
    if outcome.skipped:
        console.print(f"[yellow]  Skipped {len(outcome.skipped)} file(s):[/yellow]")
        for path in outcome.skipped[:10]:
            console.print(f"    [dim]{escape(path)}[/dim]")


@main.command()
@click.pass_context
def changes(ctx):
    """Show changes since the last checkpoint."""
    from restorepoint.checkpoint import get_changes_since_last

    change_set = get_changes_since_last(_project_root(ctx))
    if change_set.is_empty:
        console.print("[green]No changes since last checkpoint.[/green]")
        return

    for marker, style, paths in (
        ("+", "green", change_set.added),
        ("~", "yellow", change_set.modified),
        ("-", "red", change_set.deleted),
    ):
        for path in paths:
            console.print(f"[{style}]{marker} {escape(path)}[/{style}]")

    console.print(
        f"\n{len(change_set.added)} added, {len(change_set.modified)} modified, "
        f"{len(change_set.deleted)} deleted"
    )


@main.command()
@click.option("--limit", "-n", default=10, help="Number of entries to show")
@click.pass_context
def changelog(ctx, limit):
    """Show recent checkpoint activity."""
    entries = _changelog(ctx).entries()
    if not entries:
        console.print("[yellow]No activity recorded yet.[/yellow]")
        return

    for entry in entries[:limit]:
        timestamp = entry.timestamp[:19].replace("T", " ")
        console.print(f"[dim]{timestamp}[/dim] [bold]{escape(entry.action)}[/bold]")
        console.print(f"  {escape(entry.description)}")
        if entry.details:
            console.print(f"  [dim]{escape(entry.details)}[/dim]")


@main.command()
@click.argument("description")
@click.option("--details", "-d", help="Longer explanation of the change")
@click.option(
    "--type",
    "-t",
    "action",
    default=CODE_CHANGE,
    show_default=True,
    help="Action type, e.g. REFACTOR or BUG_FIX",
)
@click.pass_context
def log(ctx, description, details, action):
    """Add a custom entry to the changelog."""
    _changelog(ctx).record(action, description, details)
    console.print(f"[green]✓[/green] Changelog entry added: {escape(description)}")


@main.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def undo(ctx, yes):
    """Restore the newest checkpoint, discarding changes made since."""
    from restorepoint.checkpoint import undo_last_checkpoint

    if not yes:
        if not click.confirm("Discard changes since the last checkpoint? They are backed up first."):
            console.print("Cancelled.")
            return

    result = undo_last_checkpoint(_project_root(ctx))
    if result.is_err():
        _fail(result.unwrap_err())

    outcome = result.unwrap()
    if not outcome.performed:
        console.print(f"[yellow]{outcome.message}[/yellow]")
        return

    restored = outcome.restored
    console.print(f"[green]✓[/green] Restored: {restored.restored_name} ({restored.kind.value})")
    if restored.emergency_backup_name:
        console.print(f"  Emergency backup: {restored.emergency_backup_name}")


@main.command()
@click.option("--max-age-days", type=int, default=None, help="Override configured age limit")
@click.option("--max-count", type=int, default=None, help="Override configured count limit")
@click.pass_context
def prune(ctx, max_age_days, max_count):
    """Apply the retention policy now."""
    from restorepoint.retention import run_retention

    root = _project_root(ctx)
    config = get_config(root)
    result = run_retention(
        get_snapshots_dir(root),
        max_age_days=config.max_age_days if max_age_days is None else max_age_days,
        max_count=config.max_checkpoints if max_count is None else max_count,
    )
    console.print(
        f"Pruned {result.pruned_by_age} by age, {result.pruned_by_cap} by count, "
        f"kept {result.protected} for chains, {result.total_remaining} remaining"
    )


@main.command("config")
@click.pass_context
def config_command(ctx):
    """Show the effective configuration."""
    config = get_config(_project_root(ctx))
    console.print(
        yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False),
        markup=False,
    )


if __name__ == "__main__":
    main()
