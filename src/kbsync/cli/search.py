"""kbsync search: rank indexed documents (or chunks) against a query."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from kbsync.cli.common import console, load_or_exit, open_session
from kbsync.db.models import DocumentSet, PromotionLevel
from kbsync.errors import EmbeddingError


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root (holds kbsync.yaml)."),
    ] = Path("."),
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum number of results."),
    ] = None,
    min_relevance: Annotated[
        float | None,
        typer.Option("--min-relevance", min=0.0, max=1.0, help="Minimum similarity (0-1)."),
    ] = None,
    chunks: Annotated[
        bool,
        typer.Option("--chunks", help="Search chunks of large documents instead of whole documents."),
    ] = False,
    doc_set: Annotated[
        DocumentSet | None,
        typer.Option("--set", case_sensitive=False, help="Restrict to one document set."),
    ] = None,
    min_level: Annotated[
        PromotionLevel | None,
        typer.Option("--min-level", case_sensitive=False, help="Minimum promotion level."),
    ] = None,
) -> None:
    """Vector search over the knowledge store of this project and branch."""
    cfg = load_or_exit(root)
    limit = limit or cfg.search.limit
    threshold = cfg.search.min_relevance if min_relevance is None else min_relevance

    with open_session(root, cfg, needs_embeddings=True) as session:
        try:
            vector = session.embedder.embed(query)
        except EmbeddingError as exc:
            console.print(f"[red]Error:[/] Could not embed the query: {exc}")
            raise typer.Exit(1) from None

        search = session.repository.search_chunks if chunks else session.repository.search_documents
        hits = search(
            session.tenant,
            vector,
            limit=limit,
            min_relevance=threshold,
            doc_set=doc_set,
            min_promotion_level=min_level,
        )

    if not hits:
        console.print(f"[dim]No results at or above relevance {threshold:.2f}.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Path")
    table.add_column("Title" if not chunks else "Section")
    table.add_column("Level")
    for hit in hits:
        path = hit.document.relative_path
        if hit.chunk is not None:
            label = hit.chunk.header_path or f"chunk {hit.chunk.chunk_index}"
            path = f"{path}:{hit.chunk.start_line + 1}-{hit.chunk.end_line + 1}"
        else:
            label = hit.document.title
        if hit.document.doc_set is DocumentSet.EXTERNAL:
            path = f"{path} [dim](external)[/]"
        table.add_row(f"{hit.similarity:.3f}", path, label, hit.document.promotion_level.value)
    console.print(table)
