"""CLI entrypoint for diffden."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .app import DiffDen
from .paths import HOME_ENV_VAR
from .registry import RegistryError
from .watcher import DEBOUNCE_SECONDS


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_app(ctx: click.Context, **kwargs) -> DiffDen:
    """Build the orchestrator and load the registry (fatal on corruption)."""
    app = DiffDen(ctx.obj["home"], **kwargs)
    try:
        app.load()
    except RegistryError as e:
        raise click.ClickException(str(e))
    return app


FILE_ARG = click.argument(
    "file_path",
    type=click.Path(dir_okay=False, path_type=Path),
)


@click.group()
@click.version_option(__version__, prog_name="diffden")
@click.option(
    "--home",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    envvar=HOME_ENV_VAR,
    default=None,
    help=f"Data directory for registry and history (default ~/.diffden, env {HOME_ENV_VAR})",
)
@click.option("--verbose", is_flag=True, help="Log watcher and store activity")
@click.pass_context
def cli(ctx: click.Context, home: Path | None, verbose: bool) -> None:
    """diffden - automatic snapshot history for scratch files.

    Track a few files, and every settled change becomes a browsable,
    diffable, restorable snapshot.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["home"] = home.expanduser().resolve() if home is not None else None


# -----------------------------------------------------------------------------
# Project commands
# -----------------------------------------------------------------------------


@cli.command()
@FILE_ARG
@click.pass_context
def track(ctx: click.Context, file_path: Path) -> None:
    """Start tracking FILE_PATH and record its current content.

    Examples:

        diffden track notes/todo.md
    """
    from .commands.project_cmd import run_track

    app = _load_app(ctx)
    try:
        code = run_track(app, file_path)
    except RegistryError as e:
        raise click.ClickException(str(e))
    sys.exit(code)


@cli.command()
@FILE_ARG
@click.pass_context
def untrack(ctx: click.Context, file_path: Path) -> None:
    """Stop tracking FILE_PATH. Its history is kept."""
    from .commands.project_cmd import run_untrack

    app = _load_app(ctx)
    try:
        code = run_untrack(app, file_path)
    except RegistryError as e:
        raise click.ClickException(str(e))
    sys.exit(code)


@cli.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List tracked files with snapshot counts."""
    from .commands.project_cmd import run_list

    run_list(_load_app(ctx))


@cli.command("open")
@click.argument("slug")
@click.pass_context
def open_cmd(ctx: click.Context, slug: str) -> None:
    """Open the history repository of project SLUG in your editor."""
    from .commands.project_cmd import run_open

    sys.exit(run_open(_load_app(ctx), slug))


@cli.command()
@click.argument("slug")
@click.pass_context
def link(ctx: click.Context, slug: str) -> None:
    """Explain how to browse project SLUG's history from VS Code."""
    from .commands.project_cmd import run_link

    sys.exit(run_link(_load_app(ctx), slug))


# -----------------------------------------------------------------------------
# History commands
# -----------------------------------------------------------------------------


@cli.command()
@FILE_ARG
@click.option("--limit", "-n", type=int, default=None, help="Show only the newest N snapshots")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Output format",
)
@click.pass_context
def log(ctx: click.Context, file_path: Path, limit: int | None, output_format: str) -> None:
    """Show the snapshot history of FILE_PATH, newest first.

    Examples:

        diffden log notes/todo.md -n 5

        diffden log notes/todo.md --format json
    """
    from .commands.history_cmd import run_log

    run_log(_load_app(ctx), file_path, limit=limit, format=output_format)


@cli.command()
@FILE_ARG
@click.argument("revision")
@click.pass_context
def diff(ctx: click.Context, file_path: Path, revision: str) -> None:
    """Show what snapshot REVISION changed in FILE_PATH."""
    from .commands.history_cmd import run_diff

    sys.exit(run_diff(_load_app(ctx), file_path, revision))


@cli.command()
@FILE_ARG
@click.argument("revision")
@click.pass_context
def show(ctx: click.Context, file_path: Path, revision: str) -> None:
    """Print FILE_PATH as recorded by snapshot REVISION."""
    from .commands.history_cmd import run_show

    sys.exit(run_show(_load_app(ctx), file_path, revision))


@cli.command()
@FILE_ARG
@click.argument("revision")
@click.pass_context
def restore(ctx: click.Context, file_path: Path, revision: str) -> None:
    """Overwrite FILE_PATH with its content at snapshot REVISION."""
    from .commands.history_cmd import run_restore

    sys.exit(run_restore(_load_app(ctx), file_path, revision))


@cli.command()
@FILE_ARG
@click.pass_context
def snapshot(ctx: click.Context, file_path: Path) -> None:
    """Record the current content of FILE_PATH now."""
    from .commands.history_cmd import run_snapshot

    sys.exit(run_snapshot(_load_app(ctx), file_path))


# -----------------------------------------------------------------------------
# Watch command
# -----------------------------------------------------------------------------


@cli.command()
@click.option(
    "--debounce",
    type=float,
    default=DEBOUNCE_SECONDS,
    show_default=True,
    help="Quiet period in seconds before a burst of writes is recorded",
)
@click.option(
    "--count",
    type=int,
    default=None,
    help="Exit after recording this many snapshots",
)
@click.pass_context
def watch(ctx: click.Context, debounce: float, count: int | None) -> None:
    """Watch tracked files and snapshot every settled change.

    Runs until interrupted (Ctrl+C).
    """
    from .commands.watch_cmd import run_watch

    app = _load_app(ctx, debounce_seconds=debounce)
    try:
        run_watch(app, count=count)
    except RegistryError as e:
        raise click.ClickException(str(e))


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
