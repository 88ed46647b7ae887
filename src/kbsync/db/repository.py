"""Repository for all kbsync store operations.

One class, two access paths:

* the transactional path (``save_document``, ``delete_document``,
  ``update_promotion_level`` ...) where each call is a single SQLite
  transaction covering the document row, its chunk rows, and every vec row
  that belongs to them, so a document is never visible with a partial or
  stale chunk set;
* the search path (``search_documents``, ``search_chunks``, lookups) which
  reads vectors back through sqlite-vec, always scoped by the tenant triple.

The connection may be shared by several worker threads and the reconciliation
thread; a re-entrant lock serialises access to it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from kbsync.db.models import (
    BatchWriteResult,
    Chunk,
    Document,
    DocumentSet,
    PromotionLevel,
    SearchHit,
    WriteFailure,
)
from kbsync.db.vectors import ensure_vec_tables
from kbsync.errors import NotFoundError, PersistenceError, StoreUnavailableError
from kbsync.tenant import TenantContext

logger = logging.getLogger(__name__)

_DOC_COLUMNS = (
    "seq, id, project_name, branch_name, path_hash, doc_set, relative_path, title, "
    "summary, doc_type, promotion_level, content_hash, char_count, metadata, "
    "is_chunked, chunk_count, embedding_model, indexed_at, updated_at"
)

_CHUNK_COLUMNS = (
    "seq, document_id, project_name, branch_name, path_hash, doc_set, promotion_level, "
    "chunk_index, header_path, content, start_line, end_line, created_at"
)

_TENANT_FILTER = "project_name = ? AND branch_name = ? AND path_hash = ?"

# sqlite3 messages that mean "try again later" rather than "this write is wrong"
_TRANSIENT_MARKERS = ("locked", "busy")
_UNAVAILABLE_MARKERS = ("unable to open", "closed database", "disk i/o error")


class Repository:
    """Data access layer for documents, chunks, and their embeddings.

    Implements both :class:`~kbsync.db.protocols.DocumentWriter` and
    :class:`~kbsync.db.protocols.DocumentSearcher`. The connection is owned
    by the caller and must be closed after use.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        embedding_model: str,
        dimensions: int,
    ) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see kbsync.db.schema.initialize).
            embedding_model: Model whose vectors this repository reads and writes.
            dimensions: Vector length produced by *embedding_model*.
        """
        self._conn = conn
        self._lock = threading.RLock()
        self.embedding_model = embedding_model
        self.dimensions = dimensions
        with self._lock:
            try:
                self._vec = ensure_vec_tables(conn, embedding_model, dimensions)
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"Cannot prepare vector tables: {exc}") from exc

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """One atomic unit: commit on success, roll back on any exception."""
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("BEGIN IMMEDIATE")
                    yield self._conn
            except sqlite3.Error as exc:
                raise _translate(operation, exc) from exc

    @contextmanager
    def _reading(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                raise _translate(operation, exc) from exc

    # ------------------------------------------------------------------
    # Documents: transactional path
    # ------------------------------------------------------------------

    def save_document(
        self,
        document: Document,
        chunks: Sequence[Chunk],
        *,
        replace_ids: Sequence[str] = (),
    ) -> Document:
        """Upsert *document* and replace its complete chunk set atomically.

        An existing row with the same id is updated in place (its rowid, and
        so its vec key, is kept). Records listed in *replace_ids* are deleted
        in the same transaction, which is how a rename onto an occupied path
        or a content-changed rename swaps records without a visible gap.

        Args:
            document: Document with ``embedding`` set.
            chunks: Full chunk set, indices ``0..n-1``; may be empty.
            replace_ids: Ids of records to remove as part of this write.

        Returns:
            *document* with ``rowid`` and ``chunk_count`` filled in.

        Raises:
            PersistenceError: On a missing vector, a gap in chunk indices, or a
                failed write (transient when the database is busy).
        """
        _check_embedding(document.embedding, document.id)
        _check_chunk_indices(document.id, chunks)
        for chunk in chunks:
            _check_embedding(chunk.embedding, chunk.id)

        with self._transaction(f"save {document.relative_path}") as conn:
            for replaced in replace_ids:
                if replaced != document.id:
                    self._delete_document_rows(conn, replaced)

            document.chunk_count = len(chunks)
            existing = conn.execute(
                "SELECT seq FROM documents WHERE id = ?", (document.id,)
            ).fetchone()
            if existing is None:
                document.rowid = self._insert_document_row(conn, document)
            else:
                document.rowid = existing["seq"]
                self._update_document_row(conn, document)
                self._delete_vectors(conn, "documents", [document.rowid])

            conn.execute(
                f"INSERT INTO {self._vec.documents}(rowid, embedding) VALUES (?, ?)",
                (document.rowid, json.dumps(document.embedding)),
            )
            self._delete_chunk_rows(conn, document.id)
            self._insert_chunk_rows(conn, document, chunks)

        logger.debug(
            "Saved document %s (%s, %d chunks)",
            document.id,
            document.relative_path,
            document.chunk_count,
        )
        return document

    def save_documents(
        self, items: Sequence[tuple[Document, Sequence[Chunk]]]
    ) -> BatchWriteResult:
        """Bulk upsert. Each item is its own transaction; failures do not roll back siblings.

        Raises:
            StoreUnavailableError: If the store itself goes away mid-batch.
        """
        result = BatchWriteResult()
        for document, chunks in items:
            try:
                self.save_document(document, chunks)
            except StoreUnavailableError:
                raise
            except PersistenceError as exc:
                logger.warning("Batch save failed for %s: %s", document.relative_path, exc)
                result.failed.append(WriteFailure(key=document.id, error=exc))
            else:
                result.succeeded.append(document.id)
        return result

    def delete_document(self, document_id: str) -> bool:
        """Delete a document, its chunks, and all of their vectors atomically.

        Returns:
            True if a record was deleted, False if none existed.
        """
        with self._transaction(f"delete {document_id}") as conn:
            return self._delete_document_rows(conn, document_id)

    def delete_documents(self, document_ids: Sequence[str]) -> BatchWriteResult:
        """Bulk delete by id. Missing ids count as succeeded."""
        result = BatchWriteResult()
        for document_id in document_ids:
            try:
                self.delete_document(document_id)
            except StoreUnavailableError:
                raise
            except PersistenceError as exc:
                logger.warning("Batch delete failed for %s: %s", document_id, exc)
                result.failed.append(WriteFailure(key=document_id, error=exc))
            else:
                result.succeeded.append(document_id)
        return result

    def delete_chunks(self, document_id: str) -> int:
        """Remove every chunk of *document_id* and mark it unchunked.

        Idempotent: returns 0 when there is nothing to delete.
        """
        with self._transaction(f"delete chunks of {document_id}") as conn:
            deleted = self._delete_chunk_rows(conn, document_id)
            conn.execute(
                "UPDATE documents SET is_chunked = 0, chunk_count = 0, "
                "updated_at = datetime('now') WHERE id = ?",
                (document_id,),
            )
        return deleted

    def replace_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Swap the complete chunk set of an existing document in one transaction.

        Raises:
            NotFoundError: If no document has *document_id*.
        """
        _check_chunk_indices(document_id, chunks)
        for chunk in chunks:
            _check_embedding(chunk.embedding, chunk.id)

        with self._transaction(f"replace chunks of {document_id}") as conn:
            row = conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"No document with id '{document_id}'")
            parent = _row_to_document(row)
            self._delete_chunk_rows(conn, document_id)
            self._insert_chunk_rows(conn, parent, chunks)
            conn.execute(
                "UPDATE documents SET is_chunked = ?, chunk_count = ?, "
                "updated_at = datetime('now') WHERE id = ?",
                (int(bool(chunks)), len(chunks), document_id),
            )
        return len(chunks)

    def update_path(
        self,
        document_id: str,
        new_relative_path: str,
        *,
        replace_ids: Sequence[str] = (),
    ) -> None:
        """Move a record to a new path, keeping id, embedding, and chunks.

        Records in *replace_ids* (e.g. one already stored at the target path)
        are deleted in the same transaction.

        Raises:
            NotFoundError: If no document has *document_id*.
        """
        with self._transaction(f"rename {document_id}") as conn:
            for replaced in replace_ids:
                if replaced != document_id:
                    self._delete_document_rows(conn, replaced)
            cur = conn.execute(
                "UPDATE documents SET relative_path = ?, updated_at = datetime('now') WHERE id = ?",
                (new_relative_path, document_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"No document with id '{document_id}'")

    def update_promotion_level(self, document_id: str, level: PromotionLevel) -> int:
        """Set the document's promotion level and cascade it to every chunk atomically.

        Returns:
            Number of chunks updated.

        Raises:
            NotFoundError: If no document has *document_id*.
        """
        with self._transaction(f"promote {document_id}") as conn:
            cur = conn.execute(
                "UPDATE documents SET promotion_level = ?, updated_at = datetime('now') WHERE id = ?",
                (level.value, document_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"No document with id '{document_id}'")
            cur = conn.execute(
                "UPDATE chunks SET promotion_level = ? WHERE document_id = ?",
                (level.value, document_id),
            )
            return cur.rowcount

    def delete_tenant(self, tenant: TenantContext, doc_set: DocumentSet | None = None) -> int:
        """Delete every document (with chunks and vectors) for *tenant*.

        Returns:
            Number of documents deleted.
        """
        sql, params = _scoped("SELECT id FROM documents", tenant, doc_set)
        with self._transaction(f"delete tenant {tenant}") as conn:
            ids = [r["id"] for r in conn.execute(sql, params).fetchall()]
            for document_id in ids:
                self._delete_document_rows(conn, document_id)
        logger.info("Deleted %d document(s) for tenant %s", len(ids), tenant)
        return len(ids)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, document_id: str) -> Document | None:
        """Return a document by id, or None if not found."""
        with self._reading("get document") as conn:
            row = conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
        return _row_to_document(row) if row else None

    def get_by_path(
        self,
        tenant: TenantContext,
        relative_path: str,
        doc_set: DocumentSet = DocumentSet.PROJECT,
    ) -> Document | None:
        """Return the document stored for *relative_path* in *tenant*, or None."""
        with self._reading("get document by path") as conn:
            row = conn.execute(
                f"SELECT {_DOC_COLUMNS} FROM documents "
                f"WHERE {_TENANT_FILTER} AND doc_set = ? AND relative_path = ?",
                (*_tenant_params(tenant), doc_set.value, relative_path),
            ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(
        self, tenant: TenantContext, doc_set: DocumentSet = DocumentSet.PROJECT
    ) -> list[Document]:
        """Return all documents of one set in *tenant*, ordered by path."""
        sql, params = _scoped(f"SELECT {_DOC_COLUMNS} FROM documents", tenant, doc_set)
        with self._reading("list documents") as conn:
            rows = conn.execute(sql + " ORDER BY relative_path", params).fetchall()
        return [_row_to_document(r) for r in rows]

    def get_chunks(self, document_id: str) -> list[Chunk]:
        """Return the chunks of *document_id* ordered by index (empty if unchunked)."""
        with self._reading("get chunks") as conn:
            rows = conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY chunk_index",
                (document_id,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def get_embedding(self, document_id: str) -> list[float] | None:
        """Read the stored document vector back from the vec table."""
        with self._reading("get embedding") as conn:
            row = conn.execute(
                "SELECT seq FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            if row is None:
                return None
            vec_row = conn.execute(
                f"SELECT vec_to_json(embedding) AS embedding FROM {self._vec.documents} "
                "WHERE rowid = ?",
                (row["seq"],),
            ).fetchone()
        return json.loads(vec_row["embedding"]) if vec_row else None

    def count_documents(self, tenant: TenantContext, doc_set: DocumentSet | None = None) -> int:
        sql, params = _scoped("SELECT COUNT(*) FROM documents", tenant, doc_set)
        with self._reading("count documents") as conn:
            return conn.execute(sql, params).fetchone()[0]

    def count_chunks(self, tenant: TenantContext, doc_set: DocumentSet | None = None) -> int:
        sql, params = _scoped("SELECT COUNT(*) FROM chunks", tenant, doc_set)
        with self._reading("count chunks") as conn:
            return conn.execute(sql, params).fetchone()[0]

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_documents(
        self,
        tenant: TenantContext,
        embedding: list[float],
        *,
        limit: int = 10,
        min_relevance: float = 0.0,
        doc_set: DocumentSet | None = None,
        min_promotion_level: PromotionLevel | None = None,
    ) -> list[SearchHit]:
        """Rank whole documents by cosine similarity to *embedding*.

        Similarity is ``1 - cosine distance``; hits below *min_relevance* are
        dropped before *limit* is applied. Results are best-first.
        """
        inner, params = _scoped(
            f"SELECT {_prefixed('d', _DOC_COLUMNS)}, "
            "1 - vec_distance_cosine(v.embedding, ?) AS similarity "
            f"FROM documents d JOIN {self._vec.documents} v ON v.rowid = d.seq",
            tenant,
            doc_set,
            alias="d",
            min_promotion_level=min_promotion_level,
        )
        sql = (
            f"SELECT * FROM ({inner}) WHERE similarity >= ? "
            "ORDER BY similarity DESC LIMIT ?"
        )
        with self._reading("search documents") as conn:
            rows = conn.execute(
                sql, (json.dumps(embedding), *params, min_relevance, limit)
            ).fetchall()
        return [SearchHit(document=_row_to_document(r), similarity=r["similarity"]) for r in rows]

    def search_chunks(
        self,
        tenant: TenantContext,
        embedding: list[float],
        *,
        limit: int = 10,
        min_relevance: float = 0.0,
        doc_set: DocumentSet | None = None,
        min_promotion_level: PromotionLevel | None = None,
    ) -> list[SearchHit]:
        """Rank chunks by cosine similarity; each hit carries its owning document."""
        inner, params = _scoped(
            f"SELECT {_prefixed('c', _CHUNK_COLUMNS)}, "
            "1 - vec_distance_cosine(v.embedding, ?) AS similarity "
            f"FROM chunks c JOIN {self._vec.chunks} v ON v.rowid = c.seq",
            tenant,
            doc_set,
            alias="c",
            min_promotion_level=min_promotion_level,
        )
        sql = (
            f"SELECT * FROM ({inner}) WHERE similarity >= ? "
            "ORDER BY similarity DESC LIMIT ?"
        )
        with self._reading("search chunks") as conn:
            rows = conn.execute(
                sql, (json.dumps(embedding), *params, min_relevance, limit)
            ).fetchall()

            hits: list[SearchHit] = []
            parents: dict[str, Document] = {}
            for row in rows:
                chunk = _row_to_chunk(row)
                if chunk.document_id not in parents:
                    parent_row = conn.execute(
                        f"SELECT {_DOC_COLUMNS} FROM documents WHERE id = ?",
                        (chunk.document_id,),
                    ).fetchone()
                    if parent_row is None:
                        continue
                    parents[chunk.document_id] = _row_to_document(parent_row)
                hits.append(
                    SearchHit(
                        document=parents[chunk.document_id],
                        chunk=chunk,
                        similarity=row["similarity"],
                    )
                )
        return hits

    # ------------------------------------------------------------------
    # Row-level helpers (caller holds the transaction)
    # ------------------------------------------------------------------

    def _insert_document_row(self, conn: sqlite3.Connection, doc: Document) -> int:
        cur = conn.execute(
            """
            INSERT INTO documents (
                id, project_name, branch_name, path_hash, doc_set, relative_path,
                title, summary, doc_type, promotion_level, content_hash, char_count,
                metadata, is_chunked, chunk_count, embedding_model
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                doc.id,
                *_tenant_params(doc.tenant),
                doc.doc_set.value,
                doc.relative_path,
                doc.title,
                doc.summary,
                doc.doc_type,
                doc.promotion_level.value,
                doc.content_hash,
                doc.char_count,
                doc.metadata,
                int(doc.is_chunked),
                doc.chunk_count,
                self.embedding_model,
            ),
        )
        return cur.lastrowid

    def _update_document_row(self, conn: sqlite3.Connection, doc: Document) -> None:
        conn.execute(
            """
            UPDATE documents SET
                relative_path = ?, title = ?, summary = ?, doc_type = ?,
                promotion_level = ?, content_hash = ?, char_count = ?, metadata = ?,
                is_chunked = ?, chunk_count = ?, embedding_model = ?,
                indexed_at = datetime('now'), updated_at = datetime('now')
            WHERE id = ?
            """,
            (
                doc.relative_path,
                doc.title,
                doc.summary,
                doc.doc_type,
                doc.promotion_level.value,
                doc.content_hash,
                doc.char_count,
                doc.metadata,
                int(doc.is_chunked),
                doc.chunk_count,
                self.embedding_model,
                doc.id,
            ),
        )

    def _insert_chunk_rows(
        self, conn: sqlite3.Connection, parent: Document, chunks: Sequence[Chunk]
    ) -> None:
        # Scope and promotion level always come from the parent.
        for chunk in chunks:
            cur = conn.execute(
                """
                INSERT INTO chunks (
                    id, document_id, project_name, branch_name, path_hash, doc_set,
                    promotion_level, chunk_index, header_path, content, start_line, end_line
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.id,
                    parent.id,
                    *_tenant_params(parent.tenant),
                    parent.doc_set.value,
                    parent.promotion_level.value,
                    chunk.chunk_index,
                    chunk.header_path,
                    chunk.content,
                    chunk.start_line,
                    chunk.end_line,
                ),
            )
            chunk.rowid = cur.lastrowid
            chunk.tenant = parent.tenant
            chunk.doc_set = parent.doc_set
            chunk.promotion_level = parent.promotion_level
            conn.execute(
                f"INSERT INTO {self._vec.chunks}(rowid, embedding) VALUES (?, ?)",
                (chunk.rowid, json.dumps(chunk.embedding)),
            )

    def _delete_chunk_rows(self, conn: sqlite3.Connection, document_id: str) -> int:
        seqs = [
            r[0]
            for r in conn.execute(
                "SELECT seq FROM chunks WHERE document_id = ?", (document_id,)
            ).fetchall()
        ]
        if seqs:
            self._delete_vectors(conn, "chunks", seqs)
            conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        return len(seqs)

    def _delete_document_rows(self, conn: sqlite3.Connection, document_id: str) -> bool:
        row = conn.execute(
            "SELECT seq FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        if row is None:
            return False
        self._delete_chunk_rows(conn, document_id)
        self._delete_vectors(conn, "documents", [row["seq"]])
        conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return True

    def _delete_vectors(self, conn: sqlite3.Connection, kind: str, rowids: list[int]) -> None:
        """Delete *rowids* from every vec table of *kind* (virtual tables never cascade).

        Rows indexed under an earlier embedding model live in that model's
        table, so all of them are swept, not just the active one.
        """
        tables = [
            r[0]
            for r in conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE ? "
                "AND sql LIKE 'CREATE VIRTUAL TABLE%'",
                (f"vec_{kind}_%",),
            ).fetchall()
        ]
        placeholders = ",".join("?" * len(rowids))
        for table in tables:
            conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                rowids,
            )


# ------------------------------------------------------------------
# Query + validation helpers
# ------------------------------------------------------------------


def _tenant_params(tenant: TenantContext) -> tuple[str, str, str]:
    return (tenant.project_name, tenant.branch_name, tenant.path_hash)


def _prefixed(alias: str, columns: str) -> str:
    return ", ".join(f"{alias}.{col.strip()}" for col in columns.split(","))


def _scoped(
    select: str,
    tenant: TenantContext,
    doc_set: DocumentSet | None,
    *,
    alias: str = "",
    min_promotion_level: PromotionLevel | None = None,
) -> tuple[str, list[object]]:
    """Append the tenant (and optional doc-set / promotion) filter to *select*."""
    p = f"{alias}." if alias else ""
    clauses = [f"{p}project_name = ?", f"{p}branch_name = ?", f"{p}path_hash = ?"]
    params: list[object] = list(_tenant_params(tenant))
    if doc_set is not None:
        clauses.append(f"{p}doc_set = ?")
        params.append(doc_set.value)
    if min_promotion_level is not None:
        levels = [lvl.value for lvl in PromotionLevel if lvl.rank >= min_promotion_level.rank]
        clauses.append(f"{p}promotion_level IN ({','.join('?' * len(levels))})")
        params.extend(levels)
    return f"{select} WHERE {' AND '.join(clauses)}", params


def _check_embedding(embedding: list[float] | None, owner: str) -> None:
    if not embedding:
        raise PersistenceError(f"'{owner}' has no embedding; refusing to write it")


def _check_chunk_indices(document_id: str, chunks: Sequence[Chunk]) -> None:
    indices = [c.chunk_index for c in chunks]
    if indices != list(range(len(chunks))):
        raise PersistenceError(
            f"Chunk indices for '{document_id}' must be 0..{len(chunks) - 1} in order, got {indices}"
        )
    for chunk in chunks:
        if chunk.document_id != document_id:
            raise PersistenceError(
                f"Chunk '{chunk.id}' does not belong to document '{document_id}'"
            )


def _translate(operation: str, exc: sqlite3.Error) -> PersistenceError:
    message = str(exc).lower()
    if any(m in message for m in _UNAVAILABLE_MARKERS):
        return StoreUnavailableError(f"Store unavailable during {operation}: {exc}")
    transient = any(m in message for m in _TRANSIENT_MARKERS)
    return PersistenceError(f"{operation} failed: {exc}", transient=transient)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_tenant(row: sqlite3.Row) -> TenantContext:
    return TenantContext(
        project_name=row["project_name"],
        branch_name=row["branch_name"],
        path_hash=row["path_hash"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        rowid=row["seq"],
        id=row["id"],
        tenant=_row_tenant(row),
        doc_set=DocumentSet(row["doc_set"]),
        relative_path=row["relative_path"],
        title=row["title"],
        summary=row["summary"],
        doc_type=row["doc_type"],
        promotion_level=PromotionLevel(row["promotion_level"]),
        content_hash=row["content_hash"],
        char_count=row["char_count"],
        metadata=row["metadata"],
        is_chunked=bool(row["is_chunked"]),
        chunk_count=row["chunk_count"],
        embedding_model=row["embedding_model"],
        indexed_at=row["indexed_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["seq"],
        document_id=row["document_id"],
        tenant=_row_tenant(row),
        doc_set=DocumentSet(row["doc_set"]),
        promotion_level=PromotionLevel(row["promotion_level"]),
        chunk_index=row["chunk_index"],
        header_path=row["header_path"],
        content=row["content"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        created_at=row["created_at"],
    )
