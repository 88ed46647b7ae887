"""Per-model sqlite-vec virtual table management.

Documents and chunks get separate vec0 tables per embedding model, keyed by
the rowid of the owning ``documents`` / ``chunks`` row. Switching models
creates new tables instead of mixing vectors of different spaces.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass

_KINDS = ("documents", "chunks")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "ollama/nomic-embed-text"       -> "ollama_nomic_embed_text"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(kind: str, model_slug: str) -> str:
    """Return the vec table name for *kind* ("documents" or "chunks") and a model slug."""
    if kind not in _KINDS:
        raise ValueError(f"kind must be one of {_KINDS}, got '{kind}'")
    return f"vec_{kind}_{model_slug}"


@dataclass(frozen=True)
class VecTables:
    """Names of the two vec tables used for one embedding model."""

    documents: str
    chunks: str
    dimensions: int


def ensure_vec_table(conn: sqlite3.Connection, table: str, dimensions: int) -> str:
    """Create *table* as a vec0 virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        table: Table name produced by vec_table_name().
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name.

    Raises:
        ValueError: On an unsafe table name, non-positive dimensions, or an
            existing table declared with different dimensions.
    """
    if not re.fullmatch(r"vec_[a-z0-9_]+", table):
        raise ValueError(
            f"Invalid vec table name '{table}'; use vec_table_name() to build it."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    existing = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
        )
        conn.commit()
    else:
        declared = re.search(r"float\[(\d+)\]", existing[0] or "")
        if declared and int(declared.group(1)) != dimensions:
            raise ValueError(
                f"Vec table '{table}' was created with {declared.group(1)} dimensions, "
                f"but {dimensions} were requested. Re-index into a fresh store or "
                "restore the original embedding.dimensions."
            )

    return table


def ensure_vec_tables(conn: sqlite3.Connection, model: str, dimensions: int) -> VecTables:
    """Create (if needed) the document and chunk vec tables for *model*."""
    slug = model_to_slug(model)
    return VecTables(
        documents=ensure_vec_table(conn, vec_table_name("documents", slug), dimensions),
        chunks=ensure_vec_table(conn, vec_table_name("chunks", slug), dimensions),
        dimensions=dimensions,
    )
