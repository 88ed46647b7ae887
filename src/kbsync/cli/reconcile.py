"""kbsync reconcile: bring the store in line with the documents on disk.

Usage:
  kbsync reconcile
  kbsync reconcile --external ../shared-docs
  kbsync reconcile --dry-run
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from kbsync.cli.common import console, failures_table, load_or_exit, open_session
from kbsync.db.models import DocumentSet
from kbsync.errors import FileReadError, OperationCancelled
from kbsync.sync.reconcile import ReconcileAction, ReconciliationEngine, ReconciliationResult


def reconcile_cmd(
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root (holds kbsync.yaml)."),
    ] = Path("."),
    external: Annotated[
        Path | None,
        typer.Option("--external", help="Also reconcile this read-only document directory."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show the planned actions without writing."),
    ] = False,
) -> None:
    """Index new and changed documents and drop records of deleted ones."""
    cfg = load_or_exit(root)
    if external is not None:
        cfg.external.path = str(external.expanduser().resolve())

    with open_session(root, cfg, needs_embeddings=not dry_run) as session:
        engines: list[ReconciliationEngine] = [session.reconciler]
        if session.external is not None:
            engines.append(session.external)

        if dry_run:
            for engine in engines:
                _show_plan(engine, session)
            return

        failed = 0
        for engine in engines:
            doc_set = engine.doc_set
            with console.status(f"Reconciling {doc_set.value} documents…"):
                result = session.reconcile(doc_set)
            _show_result(result)
            failed += result.failed + int(result.aborted)

    if failed:
        raise typer.Exit(1)


def _show_plan(engine: ReconciliationEngine, session) -> None:
    try:
        plan = engine.plan(session.tenant, session.cancel)
    except FileReadError as exc:
        console.print(f"\n[red]Error:[/] {exc}")
        return
    except OperationCancelled:
        return
    console.print(
        f"\n[bold]{engine.doc_set.value}[/] {engine.root}: "
        f"{plan.files_on_disk} on disk, {plan.records_in_store} stored"
    )
    if not plan.has_changes:
        console.print("  [dim]Nothing to do.[/]")
        return
    for item in plan.items:
        if item.action is ReconcileAction.SKIP:
            continue
        console.print(f"  {item.action.value:<7} {item.relative_path}  [dim]({item.reason})[/]")
    console.print("[dim]Dry run: nothing written.[/]")


def _show_result(result: ReconciliationResult) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Scanned", str(result.files_scanned))
    table.add_row("Added", f"[green]{result.added}[/]")
    table.add_row("Updated", f"[yellow]{result.updated}[/]")
    table.add_row("Deleted", f"[red]{result.deleted}[/]")
    table.add_row("Unchanged", str(result.skipped))
    table.add_row("Failed", str(result.failed))
    table.add_row("Duration", f"{result.duration:.2f}s")

    title = "external (read-only)" if result.doc_set is DocumentSet.EXTERNAL else "project"
    if result.aborted:
        console.print(f"\n[red]Reconciliation of {title} documents aborted:[/] {result.error}")
        console.print("[dim]Nothing was deleted. Check the configured document directory.[/]")
        return
    console.print(f"\n[bold]Reconciled {title} documents[/]")
    console.print(table)
    if result.cancelled:
        console.print("[yellow]Cancelled before completion.[/]")
    if result.failures:
        console.print(failures_table(result.failures))
