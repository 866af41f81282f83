"""History commands - log, diff, show, restore, and manual snapshots."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from ..app import DiffDen
from ..backend import BackendError
from ..paths import relative_time
from ..registry import ProjectConfig
from ..store import NO_CONTENT, NO_DIFF


def _tracked(app: DiffDen, console: Console, file_path: Path) -> tuple[ProjectConfig, str] | None:
    resolved = app.resolve_file(file_path)
    if resolved is None:
        console.print(f"[red]Not tracked:[/red] {file_path}")
    return resolved


def _revision(
    app: DiffDen,
    console: Console,
    project: ProjectConfig,
    file_name: str,
    prefix: str,
) -> str | None:
    revision = app.store.resolve_revision(project.slug, prefix, file_name)
    if revision is None:
        console.print(f"[red]No unique snapshot of {file_name} matches[/red] {prefix}")
    return revision


def run_log(
    app: DiffDen,
    file_path: Path,
    *,
    limit: int | None = None,
    format: str = "text",
) -> int:
    """
    Display the snapshot history of a file, newest first.

    Returns the number of snapshots displayed.
    """
    console = Console()

    resolved = _tracked(app, console, file_path)
    if resolved is None:
        return 0
    project, file_name = resolved

    history = app.store.log(project.slug, file_name)
    if limit is not None:
        history = history[:limit]

    if format == "json":
        click.echo(json.dumps([s.to_dict() for s in history], indent=2))
        return len(history)

    if not history:
        console.print("[dim]No snapshots yet.[/dim]")
        return 0

    table = Table(title=f"{project.slug}/{file_name}")
    table.add_column("Revision", style="yellow", no_wrap=True)
    table.add_column("When", no_wrap=True)
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")
    table.add_column("Message")

    for snapshot in history:
        table.add_row(
            snapshot.short_revision,
            relative_time(snapshot.timestamp),
            str(snapshot.lines_added),
            str(snapshot.lines_removed),
            escape(snapshot.message),
        )

    console.print(table)
    return len(history)


def run_diff(app: DiffDen, file_path: Path, revision_prefix: str) -> int:
    """Show the change a snapshot introduced. Returns an exit code."""
    console = Console()

    resolved = _tracked(app, console, file_path)
    if resolved is None:
        return 1
    project, file_name = resolved
    revision = _revision(app, console, project, file_name, revision_prefix)
    if revision is None:
        return 1

    text = app.store.diff(project.slug, revision, file_name)
    if text == NO_DIFF:
        console.print(f"[dim]{NO_DIFF}[/dim]")
        return 1
    console.print(Syntax(text, "diff", theme="ansi_dark", background_color="default"))
    return 0


def run_show(app: DiffDen, file_path: Path, revision_prefix: str) -> int:
    """Print a file exactly as recorded by a snapshot."""
    console = Console(stderr=True)

    resolved = _tracked(app, console, file_path)
    if resolved is None:
        return 1
    project, file_name = resolved
    revision = _revision(app, console, project, file_name, revision_prefix)
    if revision is None:
        return 1

    text = app.store.content(project.slug, revision, file_name)
    if text == NO_CONTENT:
        console.print(f"[dim]{NO_CONTENT}[/dim]")
        return 1
    click.echo(text, nl=False)
    return 0


def run_restore(app: DiffDen, file_path: Path, revision_prefix: str) -> int:
    """
    Overwrite a tracked file with a snapshot's content.

    The restored content is recorded immediately, so the rollback itself
    shows up in history unless it matches the latest snapshot.
    """
    console = Console()

    resolved = _tracked(app, console, file_path)
    if resolved is None:
        return 1
    project, file_name = resolved
    revision = _revision(app, console, project, file_name, revision_prefix)
    if revision is None:
        return 1

    destination = project.file_path(file_name)
    if not app.store.restore(project.slug, revision, file_name, destination):
        console.print("[red]Restore failed.[/red]")
        return 1

    console.print(f"[bold]Restored[/bold] {file_name} to {revision[:7]}")
    try:
        new_revision = app.store.commit(project.slug, destination)
    except BackendError as e:
        console.print(f"[yellow]Restored content not recorded:[/yellow] {escape(str(e))}")
        return 0
    if new_revision:
        console.print(f"  Recorded as snapshot {new_revision[:7]}")
    return 0


def run_snapshot(app: DiffDen, file_path: Path) -> int:
    """Record the current content of a tracked file now."""
    console = Console()

    resolved = _tracked(app, console, file_path)
    if resolved is None:
        return 1
    project, file_name = resolved

    try:
        revision = app.store.commit(project.slug, project.file_path(file_name))
    except BackendError as e:
        console.print(f"[red]Snapshot failed:[/red] {escape(str(e))}")
        return 1

    if revision is None:
        console.print("[dim]No changes since the last snapshot.[/dim]")
    else:
        console.print(f"[bold]Snapshot[/bold] {revision[:7]} of {file_name}")
    return 0
