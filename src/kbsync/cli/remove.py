"""kbsync remove: drop documents from the knowledge store.

The file on disk is left alone; only the store record (with its chunks and
vectors) is removed. A later reconcile re-indexes a file that still exists.

Usage:
  kbsync remove --path guides/setup.md
  kbsync remove --all --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from kbsync.cli.common import console, load_or_exit, open_session, print_result
from kbsync.cli.errors import err_document_not_found
from kbsync.lifecycle.results import SkipReason


def remove_cmd(
    path: Annotated[
        list[str] | None,
        typer.Option("--path", "-p", help="Document path, relative to the docs directory (repeatable)."),
    ] = None,
    all_: Annotated[
        bool,
        typer.Option("--all", help="Remove every document of this project and branch."),
    ] = False,
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root (holds kbsync.yaml)."),
    ] = Path("."),
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove documents and their chunks from the knowledge store."""
    paths = path or []
    if not paths and not all_:
        console.print("[red]Error:[/] Nothing to remove. Use --path PATH or --all.")
        raise typer.Exit(1)

    cfg = load_or_exit(root)
    with open_session(root, cfg) as session:
        if all_:
            count = session.repository.count_documents(session.tenant)
            console.print(f"\nRemove [bold]{count}[/] document(s) of [bold]{session.tenant}[/]")
            if not yes and not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)
            removed = session.manager.delete_tenant(session.tenant)
            console.print(f"[green]✓[/] Removed {removed} document(s)")
            return

        if not yes and not typer.confirm(f"Remove {len(paths)} document(s)?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        failed = False
        for item in paths:
            result = session.manager.delete(item, session.tenant)
            if result.skip_reason is SkipReason.NOT_FOUND:
                console.print(err_document_not_found(item))
                continue
            print_result(result)
            failed = failed or result.failed

    if failed:
        raise typer.Exit(1)
