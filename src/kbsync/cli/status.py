"""kbsync status: tenant, store, and index overview."""

from __future__ import annotations

import sqlite3
from collections import Counter
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from kbsync.cli.common import console, load_or_exit, open_session
from kbsync.config import KbsyncConfig
from kbsync.db.models import DocumentSet, PromotionLevel
from kbsync.session import KnowledgeSession, resolve_under


def status_cmd(
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root (holds kbsync.yaml)."),
    ] = Path("."),
) -> None:
    """Show the tenant, the store, and what is indexed."""
    cfg = load_or_exit(root)
    db_path = resolve_under(root.expanduser().resolve(), cfg.project.db_path)

    if not db_path.exists():
        _show_project_panel(root, cfg, db_path, tenant=None)
        console.print(
            Panel(
                "[yellow]No knowledge store yet.[/]\n"
                "  Run:  kbsync reconcile",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    with open_session(root, cfg) as session:
        _show_project_panel(root, cfg, db_path, tenant=str(session.tenant))
        _show_index_panel(session)


def _show_project_panel(root: Path, cfg: KbsyncConfig, db_path: Path, tenant: str | None) -> None:
    db_info = str(db_path)
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_path} ({size_mb:.1f} MB)"

    lines = [
        f"Root:      [bold]{root.expanduser().resolve()}[/]",
        f"Docs:      {cfg.watcher.docs_dir}",
        f"Store:     {db_info}",
        f"Model:     {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
    ]
    if tenant:
        lines.insert(0, f"Tenant:    [bold]{tenant}[/]")
    if cfg.external.path:
        lines.append(f"External:  {cfg.external.path} [dim](read-only)[/]")
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_index_panel(session: KnowledgeSession) -> None:
    repo = session.repository
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Set")
    table.add_column("Documents", justify="right")
    table.add_column("Chunked", justify="right")
    table.add_column("Chunks", justify="right")
    for level in PromotionLevel:
        table.add_column(level.value.capitalize(), justify="right")

    for doc_set in DocumentSet:
        documents = repo.list_documents(session.tenant, doc_set)
        levels = Counter(d.promotion_level for d in documents)
        table.add_row(
            doc_set.value,
            f"{len(documents):,}",
            f"{sum(1 for d in documents if d.is_chunked):,}",
            f"{repo.count_chunks(session.tenant, doc_set):,}",
            *(f"{levels.get(level, 0):,}" for level in PromotionLevel),
        )

    vec_tables = _list_vec_tables(session.conn)
    panel_body = Table.grid()
    panel_body.add_row(table)
    if vec_tables:
        panel_body.add_row("")
        for name in vec_tables:
            panel_body.add_row(f"[dim]{name}[/]")
    console.print(Panel(panel_body, title="[bold]Index[/]", expand=False))


def _list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Vector tables with their row counts."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec\\_%' ESCAPE '\\' "
        "AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name"
    ).fetchall()
    result: list[str] = []
    for (name,) in rows:
        count = conn.execute(f"SELECT COUNT(*) FROM [{name}]").fetchone()[0]  # noqa: S608
        result.append(f"{name} ({count:,} vectors)")
    return result
