"""kbsync promote: change a document's promotion level.

The new level is written to the document and all of its chunks in one
transaction. External documents are read-only and stay ``standard``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from kbsync.cli.common import console, load_or_exit, open_session, print_result
from kbsync.cli.errors import err_document_not_found, err_read_only
from kbsync.db.models import PromotionLevel
from kbsync.errors import ErrorCode
from kbsync.lifecycle.results import SkipReason


def promote_cmd(
    path: Annotated[
        str,
        typer.Option("--path", "-p", help="Document path, relative to the docs directory."),
    ],
    level: Annotated[
        PromotionLevel,
        typer.Option("--level", "-l", case_sensitive=False, help="New promotion level."),
    ],
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root (holds kbsync.yaml)."),
    ] = Path("."),
) -> None:
    """Set the promotion level of a document and its chunks."""
    cfg = load_or_exit(root)
    with open_session(root, cfg) as session:
        result = session.manager.update_promotion_level(path, level, session.tenant)

    if result.skip_reason is SkipReason.NOT_FOUND:
        console.print(err_document_not_found(path))
        raise typer.Exit(1)
    if result.error_code is ErrorCode.READ_ONLY:
        console.print(err_read_only(result.error_message or "read-only document set"))
        raise typer.Exit(1)
    print_result(result)
    if result.failed:
        raise typer.Exit(1)
