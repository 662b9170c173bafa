"""Typer command-line interface.

Every subcommand maps to one manager verb; no business logic lives here.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

import typer

from laboratory import __version__
from laboratory.errors import LabError, log_error
from laboratory.logging import configure_logging, get_logger
from laboratory.manager import (
    Change,
    Discard,
    Expand,
    Import,
    ListApps,
    ListLabs,
    Manager,
    Mount,
    Remove,
    Repack,
    Restore,
    Run,
    Unmount,
    Update,
    execute,
)
from laboratory.services.launcher import wait_for

logger = get_logger("cli")

_ctx = {"help_option_names": ["-h", "--help"]}
app = typer.Typer(
    help="Manage portable lab environments: import, expand, mount and run.",
    add_completion=False,
    no_args_is_help=True,
    context_settings=_ctx,
)


def _manager(ctx: typer.Context) -> Manager:
    return ctx.obj["manager"]


@contextmanager
def _reported(verb: str):
    """Turn lab errors into a one-line message and exit code 1."""
    try:
        yield
    except LabError as e:
        log_error(e, {"verb": verb}, logger)
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def _root_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit", is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug events to stderr"),
    cache: Optional[Path] = typer.Option(
        None, "--cache", envvar="LABORATORY_CACHE", help="Cache file location"
    ),
):
    if version:
        typer.echo(f"Laboratory v{__version__}")
        raise typer.Exit()
    configure_logging(logging.DEBUG if verbose else logging.WARNING)
    if ctx.obj is None:
        ctx.obj = {}
    if "manager" not in ctx.obj:
        ctx.obj["manager"] = Manager(cache)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command("version", help="Print the version")
def version_cmd():
    typer.echo(f"Laboratory v{__version__}")


@app.command("import", help="Import a lab from a manifest and an image or directory")
def import_cmd(
    ctx: typer.Context,
    config: Path = typer.Argument(..., help="Lab manifest (TOML)"),
    image: Optional[Path] = typer.Option(None, "--image", "-i", help="Lab image file"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Already expanded lab directory"),
):
    with _reported("import"):
        summary = execute(Import(str(config), str(image) if image else None, str(path) if path else None), _manager(ctx))
    typer.echo(f"Imported {summary.name} ({summary.state.value})")


@app.command("list", help="List known labs")
def list_cmd(ctx: typer.Context):
    with _reported("list"):
        labs = execute(ListLabs(), _manager(ctx))
    for lab in labs:
        where = ""
        if lab.drive_letter:
            where = f" at {lab.drive_letter}: -> {lab.expanded_path}"
        elif lab.expanded_path:
            where = f" at {lab.expanded_path}"
        typer.echo(f"{lab.name}\t{lab.state.value}{where}")


@app.command("list-apps", help="List the apps defined by a lab")
def list_apps_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Lab name")):
    with _reported("list-apps"):
        config = execute(ListApps(name), _manager(ctx))
    for app_ in config.apps if config else ():
        typer.echo(f"{app_.name}\t{app_.command}")


@app.command(
    "run",
    help="Run an app from a mounted lab and wait for it",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Lab name"),
    app_name: Optional[str] = typer.Option(None, "--app", "-a", help="App to run"),
    drive_letter: Optional[str] = typer.Option(
        None, "--drive-letter", "-d", help="Mount at this letter before running"
    ),
):
    with _reported("run"):
        process = execute(Run(name, app_name, tuple(ctx.args), drive_letter), _manager(ctx))
        wait_for(process)


@app.command("change", help="Point a packaged lab at another image")
def change_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Lab name"),
    image: Path = typer.Option(..., "--image", "-i", help="New image file"),
):
    with _reported("change"):
        execute(Change(name, str(image)), _manager(ctx))


@app.command("update", help="Re-read a lab's manifest")
def update_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Lab name"),
    config: Path = typer.Option(..., "--config", "-c", help="Lab manifest (TOML)"),
):
    with _reported("update"):
        execute(Update(name, str(config)), _manager(ctx))


@app.command("expand", help="Unpack a lab's image")
def expand_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Lab name"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Target directory"),
):
    with _reported("expand"):
        target = execute(Expand(name, str(path) if path else None), _manager(ctx))
    typer.echo(str(target))


@app.command("repack", help="Pack an expanded lab back into its image")
def repack_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Lab name")):
    with _reported("repack"):
        execute(Repack(name), _manager(ctx))


@app.command("restore", help="Reset an expanded lab to its image contents")
def restore_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Lab name")):
    with _reported("restore"):
        execute(Restore(name), _manager(ctx))


@app.command("discard", help="Delete an expanded lab without repacking")
def discard_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Lab name")):
    with _reported("discard"):
        execute(Discard(name), _manager(ctx))


@app.command("remove", help="Forget a lab")
def remove_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Lab name")):
    with _reported("remove"):
        execute(Remove(name), _manager(ctx))


@app.command("mount", help="Bind an expanded lab to a drive letter")
def mount_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Lab name"),
    drive_letter: str = typer.Option(..., "--drive-letter", "-d", help="Drive letter"),
):
    with _reported("mount"):
        letter = execute(Mount(name, drive_letter), _manager(ctx))
    typer.echo(f"{name} mounted at {letter}:")


@app.command("unmount", help="Release a lab's drive letter")
def unmount_cmd(ctx: typer.Context, name: str = typer.Argument(..., help="Lab name")):
    with _reported("unmount"):
        execute(Unmount(name), _manager(ctx))


def main() -> None:
    """Run the laboratory CLI."""
    app()
