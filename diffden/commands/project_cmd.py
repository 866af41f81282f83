"""Project commands - track, untrack, list, and open history repositories."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..app import DiffDen
from ..backend import BackendError
from ..editor import link_instructions, open_in_editor
from ..paths import relative_time


def run_track(app: DiffDen, file_path: Path) -> int:
    """
    Start tracking a file and record its current content.

    Returns an exit code.
    """
    console = Console()

    if not file_path.exists():
        console.print(f"[red]No such file:[/red] {file_path}")
        return 1
    if not file_path.is_file():
        console.print(f"[red]Not a regular file:[/red] {file_path}")
        return 1

    try:
        result = app.track(file_path)
    except BackendError as e:
        console.print(f"[red]Could not record {file_path}:[/red] {escape(str(e))}")
        return 1
    console.print(f"[bold]Tracking[/bold] {result.file_name} in project [cyan]{result.project.slug}[/cyan]")
    console.print(f"  Directory: {result.project.dir}")
    if result.initial_revision:
        console.print(f"  Initial snapshot: {result.initial_revision[:7]}")
    else:
        console.print("  [dim]Content already recorded; no new snapshot.[/dim]")
    return 0


def run_untrack(app: DiffDen, file_path: Path) -> int:
    """Stop tracking a file. History stays on disk."""
    console = Console()

    if app.resolve_file(file_path) is None:
        console.print(f"[yellow]Not tracked:[/yellow] {file_path}")
        return 1

    project = app.untrack(file_path)
    console.print(f"[bold]Untracked[/bold] {Path(file_path).name}")
    if project is not None and not project.files:
        console.print(f"  [dim]Project {project.slug} has no tracked files left.[/dim]")
    return 0


def run_list(app: DiffDen) -> int:
    """
    Display every tracked file with its snapshot count.

    Returns the number of tracked files.
    """
    console = Console()

    projects = app.registry.projects
    if not projects:
        console.print("[dim]Nothing tracked yet. Use `diffden track FILE`.[/dim]")
        return 0

    table = Table(title="Tracked files")
    table.add_column("Project", style="cyan")
    table.add_column("File", style="bold")
    table.add_column("Snapshots", justify="right")
    table.add_column("Last snapshot")

    total = 0
    for project in projects:
        for file_name in project.files:
            history = app.store.log(project.slug, file_name)
            last = relative_time(history[0].timestamp) if history else "-"
            table.add_row(project.slug, file_name, str(len(history)), last)
            total += 1

    console.print(table)
    return total


def run_open(app: DiffDen, slug: str) -> int:
    """Open a project's history repository in the configured editor."""
    console = Console()

    if app.registry.get_project(slug) is None:
        console.print(f"[red]Unknown project:[/red] {slug}")
        return 1

    repo_path = app.store.repo_path(slug)
    if not open_in_editor(repo_path, app.registry.config.editor):
        console.print("[red]Could not launch editor.[/red]")
        return 1
    console.print(f"Opened {repo_path}")
    return 0


def run_link(app: DiffDen, slug: str) -> int:
    """Print instructions for browsing a history repository from an editor."""
    console = Console()

    if app.registry.get_project(slug) is None:
        console.print(f"[red]Unknown project:[/red] {slug}")
        return 1

    console.print(link_instructions(app.store.repo_path(slug)), highlight=False)
    return 0
