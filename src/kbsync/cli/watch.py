"""kbsync watch: keep the store in sync while documents are edited.

Runs a startup reconciliation, then applies debounced file events until
interrupted (Ctrl+C).
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer

from kbsync.cli.common import console, load_or_exit
from kbsync.cli.errors import err_no_api_key, err_store_unavailable
from kbsync.errors import EmbeddingError, StoreUnavailableError
from kbsync.ingest.embedding import validate_api_key
from kbsync.session import KnowledgeSession


def watch_cmd(
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root (holds kbsync.yaml)."),
    ] = Path("."),
    interval: Annotated[
        float | None,
        typer.Option("--interval", help="Periodic reconciliation in seconds (0 = startup only)."),
    ] = None,
    duration: Annotated[
        float | None,
        typer.Option("--duration", hidden=True, help="Stop after N seconds (for testing)."),
    ] = None,
) -> None:
    """Watch the documents directory and index changes as they happen."""
    cfg = load_or_exit(root)
    if interval is not None:
        cfg.reconcile.interval_seconds = max(interval, 0.0)

    try:
        validate_api_key(cfg.embedding.model)
    except EmbeddingError:
        console.print(err_no_api_key(cfg.embedding.model))
        raise typer.Exit(1) from None

    try:
        session = KnowledgeSession.activate(root, cfg)
    except StoreUnavailableError as exc:
        console.print(err_store_unavailable(str(exc)))
        raise typer.Exit(1) from None

    console.print(
        f"[bold]Watching[/] {session.manager.root} for [bold]{session.tenant}[/] "
        "[dim](Ctrl+C to stop)[/]"
    )
    deadline = None if duration is None else time.monotonic() + duration
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(0.2)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping…[/]")
    finally:
        session.close()

    if session.processor is not None:
        stats = session.processor.stats
        console.print(
            f"[green]✓[/] {stats.processed} events: {stats.succeeded} applied, "
            f"{stats.skipped} unchanged, {stats.failed} failed"
        )
