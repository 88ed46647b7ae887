"""Helpers shared by the kbsync commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from kbsync.cli.errors import err_config, err_no_api_key, err_store_unavailable
from kbsync.config import ConfigError, KbsyncConfig, load_config
from kbsync.errors import EmbeddingError, StoreUnavailableError
from kbsync.ingest.embedding import validate_api_key
from kbsync.lifecycle.results import LifecycleResult
from kbsync.session import KnowledgeSession

console = Console()


def load_or_exit(root: Path) -> KbsyncConfig:
    try:
        return load_config(root)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None


@contextmanager
def open_session(
    root: Path,
    cfg: KbsyncConfig,
    *,
    needs_embeddings: bool = False,
) -> Iterator[KnowledgeSession]:
    """Open a session without background work; closed on exit."""
    if needs_embeddings:
        try:
            validate_api_key(cfg.embedding.model)
        except EmbeddingError:
            console.print(err_no_api_key(cfg.embedding.model))
            raise typer.Exit(1) from None
    try:
        session = KnowledgeSession.open(root, cfg)
    except StoreUnavailableError as exc:
        console.print(err_store_unavailable(str(exc)))
        raise typer.Exit(1) from None
    try:
        yield session
    except StoreUnavailableError as exc:
        console.print(err_store_unavailable(str(exc)))
        raise typer.Exit(1) from None
    finally:
        session.close()


def print_result(result: LifecycleResult) -> None:
    if result.failed:
        console.print(f"[red]✗[/] {result.describe()}")
    elif result.skipped:
        console.print(f"[dim]↷ {result.describe()}[/]")
    else:
        console.print(f"[green]✓[/] {result.describe()}")


def failures_table(failures: list[LifecycleResult]) -> Table:
    table = Table(title="Failures", show_header=True, header_style="bold red")
    table.add_column("Path")
    table.add_column("Code")
    table.add_column("Message", overflow="fold")
    for failure in failures:
        code = failure.error_code.value if failure.error_code else ""
        table.add_row(failure.relative_path, code, failure.error_message or "")
    return table
