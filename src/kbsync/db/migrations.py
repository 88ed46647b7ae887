"""Forward-only migration runner for the kbsync store schema.

Vec tables (vec_documents_*, vec_chunks_*) are NOT migration-managed; use
ensure_vec_tables().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
# ``seq`` aliases rowid and keys the vec tables; it stays stable across VACUUM.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    seq             INTEGER PRIMARY KEY,
    id              TEXT NOT NULL UNIQUE,
    project_name    TEXT NOT NULL,
    branch_name     TEXT NOT NULL,
    path_hash       TEXT NOT NULL,
    doc_set         TEXT NOT NULL DEFAULT 'project',
    relative_path   TEXT NOT NULL,
    title           TEXT NOT NULL DEFAULT '',
    summary         TEXT NOT NULL DEFAULT '',
    doc_type        TEXT NOT NULL DEFAULT 'doc',
    promotion_level TEXT NOT NULL DEFAULT 'standard',
    content_hash    TEXT NOT NULL,
    char_count      INTEGER NOT NULL DEFAULT 0,
    metadata        TEXT NOT NULL DEFAULT '{}',
    is_chunked      INTEGER NOT NULL DEFAULT 0,
    chunk_count     INTEGER NOT NULL DEFAULT 0,
    embedding_model TEXT NOT NULL,
    indexed_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (project_name, branch_name, path_hash, doc_set, relative_path)
);

CREATE INDEX IF NOT EXISTS idx_documents_tenant
    ON documents (project_name, branch_name, path_hash, doc_set);

CREATE TABLE IF NOT EXISTS chunks (
    seq             INTEGER PRIMARY KEY,
    id              TEXT NOT NULL UNIQUE,
    document_id     TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    project_name    TEXT NOT NULL,
    branch_name     TEXT NOT NULL,
    path_hash       TEXT NOT NULL,
    doc_set         TEXT NOT NULL DEFAULT 'project',
    promotion_level TEXT NOT NULL DEFAULT 'standard',
    chunk_index     INTEGER NOT NULL,
    header_path     TEXT NOT NULL DEFAULT '',
    content         TEXT NOT NULL,
    start_line      INTEGER NOT NULL DEFAULT 0,
    end_line        INTEGER NOT NULL DEFAULT 0,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (document_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_chunks_tenant
    ON chunks (project_name, branch_name, path_hash, doc_set);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here; use ensure_vec_tables() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh database)."""
    conn.execute(_CREATE_SCHEMA_VERSION)
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0
