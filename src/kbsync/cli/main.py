"""kbsync CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from kbsync.cli.promote import promote_cmd
from kbsync.cli.reconcile import reconcile_cmd
from kbsync.cli.remove import remove_cmd
from kbsync.cli.search import search_cmd
from kbsync.cli.status import status_cmd
from kbsync.cli.watch import watch_cmd
from kbsync.logging_config import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("kbsync")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kbsync {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="kbsync",
    help=(
        "kbsync: keep a vector index of markdown knowledge documents in sync.\n\n"
        "  kbsync reconcile  One-shot sync of the store with the files on disk.\n"
        "  kbsync watch      Sync continuously while documents are edited."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """kbsync: keep a vector index of markdown knowledge documents in sync."""
    configure_logging(verbose)


app.command("reconcile")(reconcile_cmd)
app.command("watch")(watch_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)
app.command("promote")(promote_cmd)
app.command("search")(search_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed kbsync version."""
    typer.echo(f"kbsync {_installed_version()}")


if __name__ == "__main__":
    app()
