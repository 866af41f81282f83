"""Watch command - record snapshots as tracked files change."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console

from ..app import DiffDen


def _print_watched(console: Console, app: DiffDen) -> None:
    keys = sorted(app.watcher.active_keys())
    console.print(f"[bold]Watching[/bold] {len(keys)} file(s)")
    for slug, file_name in keys:
        console.print(f"  {slug}/{file_name}")


def run_watch(app: DiffDen, *, count: int | None = None, poll_seconds: float = 0.5) -> int:
    """
    Watch every tracked file and print a line per recorded snapshot.

    This is a blocking command that runs until interrupted (Ctrl+C), or
    until `count` snapshots have been recorded. Files tracked or untracked
    by other diffden processes are picked up within `poll_seconds`.

    Returns the number of snapshots recorded.

    Raises:
        RegistryError: if the registry becomes unreadable while watching
    """
    console = Console(stderr=True)

    for error in app.start():
        console.print(f"[yellow]{error}[/yellow]")

    if not app.watcher.active_keys():
        console.print("[dim]Nothing to watch. Use `diffden track FILE` first.[/dim]")
        app.shutdown()
        return 0

    _print_watched(console, app)
    console.print(f"  Debounce: {app.watcher.debounce_seconds}s")
    console.print()
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

    recorded = 0
    try:
        while count is None or recorded < count:
            if app.registry_changed():
                before = app.watcher.active_keys()
                for error in app.reload():
                    console.print(f"[yellow]{error}[/yellow]")
                if app.watcher.active_keys() != before:
                    _print_watched(console, app)

            notice = app.watcher.notifications.get(timeout=poll_seconds)
            if notice is None:
                continue
            recorded += 1
            timestamp = datetime.now().strftime("%H:%M:%S")
            stats = ""
            latest = app.store.latest_snapshot(notice.slug, notice.file_name)
            if latest is not None and latest.revision == notice.revision:
                stats = f" [green]+{latest.lines_added}[/green] [red]-{latest.lines_removed}[/red]"
            console.print(
                f"[dim]{timestamp}[/dim] {notice.slug}/{notice.file_name} "
                f"[yellow]{notice.revision[:7]}[/yellow]{stats}"
            )
    except KeyboardInterrupt:
        console.print()
        console.print(f"[bold]Stopped.[/bold] Recorded {recorded} snapshots.")
    finally:
        app.shutdown()

    return recorded
