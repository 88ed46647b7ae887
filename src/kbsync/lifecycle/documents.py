"""Document lifecycle manager.

Turns one file event into read → parse/validate → hash compare → embed →
chunk → persist. Every operation returns a :class:`LifecycleResult`; errors
for one path are caught here and never reach sibling paths. Only
:class:`~kbsync.errors.StoreUnavailableError` propagates, because nothing
else can succeed while the store is gone.

Writes go through the repository's transactional path, so a failure at any
step leaves either the previous record or nothing, never a half-written one.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol, TypeVar

from kbsync.db.models import Chunk, Document, DocumentSet, PromotionLevel
from kbsync.db.protocols import DocumentWriter
from kbsync.errors import (
    FileReadError,
    KbsyncError,
    OperationCancelled,
    PersistenceError,
    ReadOnlyError,
    StoreUnavailableError,
    ValidationError,
)
from kbsync.hashing import content_hash, read_text
from kbsync.ingest.doctypes import DocTypeValidator, Validator
from kbsync.ingest.embedding import EmbeddingClient
from kbsync.ingest.frontmatter import FrontmatterParser, ParsedDocument
from kbsync.lifecycle.chunks import ChunkLifecycle, embed_text, line_count
from kbsync.lifecycle.results import Action, BatchResult, LifecycleResult, SkipReason
from kbsync.retry import RetryPolicy
from kbsync.tenant import TenantContext

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class Parser(Protocol):
    def parse(self, raw_text: str, fallback_title: str = "") -> ParsedDocument: ...


@dataclass
class _Plan:
    """A fully prepared write: document (with embedding) plus its chunk set."""

    document: Document
    chunks: list[Chunk]
    action: Action
    replace_ids: tuple[str, ...] = ()


class DocumentLifecycleManager:
    """Create, update, delete, and rename documents of one document set.

    Args:
        repository: Transactional store path.
        embedder: Embedding client (wrap in RetryingEmbeddingClient for backoff).
        root: Directory that relative paths are resolved against.
        parser: Front matter parser; defaults to :class:`FrontmatterParser`.
        validator: Doc-type validator; defaults to the built-in registry.
        chunks: Chunk lifecycle; built from *repository* and *embedder* if omitted.
        threshold_lines: Chunking threshold used when *chunks* is omitted.
        doc_set: Which set this manager writes. ``EXTERNAL`` is read-only:
            promotion changes are refused.
        retry: Policy for store writes.
    """

    def __init__(
        self,
        repository: DocumentWriter,
        embedder: EmbeddingClient,
        root: Path,
        *,
        parser: Parser | None = None,
        validator: Validator | None = None,
        chunks: ChunkLifecycle | None = None,
        threshold_lines: int = 500,
        doc_set: DocumentSet = DocumentSet.PROJECT,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.repository = repository
        self.embedder = embedder
        self.root = Path(root).expanduser().resolve()
        self.parser = parser or FrontmatterParser()
        self.validator = validator or DocTypeValidator()
        self.retry = retry or RetryPolicy()
        self.chunks = chunks or ChunkLifecycle(
            repository, embedder, threshold_lines=threshold_lines, retry=self.retry
        )
        self.doc_set = doc_set

    @property
    def read_only(self) -> bool:
        return self.doc_set.read_only

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create(
        self,
        path: Path | str,
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> LifecycleResult:
        """Index a new file. A path that already has a record is handled as an update."""
        return self._run(path, lambda rel: self._create(rel, tenant, cancel))

    def update(
        self,
        path: Path | str,
        tenant: TenantContext,
        cancel: threading.Event | None = None,
        *,
        force: bool = False,
    ) -> LifecycleResult:
        """Re-index a changed file, keeping its document id and promotion level.

        Identical content is a no-op reported as skipped: no embedding call and
        no store write. *force* re-embeds regardless of the hash.
        """
        return self._run(path, lambda rel: self._update(rel, tenant, cancel, force=force))

    def index(
        self,
        path: Path | str,
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> LifecycleResult:
        """Update when a record exists, create otherwise."""

        def _index(rel: str) -> LifecycleResult:
            if self._lookup(tenant, rel) is not None:
                return self._update(rel, tenant, cancel)
            return self._create(rel, tenant, cancel)

        return self._run(path, _index)

    def delete(
        self,
        path: Path | str,
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> LifecycleResult:
        """Remove the record for *path*. Nothing stored is a successful skip."""
        return self._run(path, lambda rel: self._delete(rel, tenant, cancel))

    def rename(
        self,
        old_path: Path | str,
        new_path: Path | str,
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> LifecycleResult:
        """Move a record from *old_path* to *new_path*.

        Unchanged content keeps id, embedding, and chunks and only moves the
        path. Changed content replaces the old record with a new document
        (new id) in a single transaction. No record at *old_path* means a
        plain create of *new_path*.
        """
        try:
            old_rel = self.relative_path(old_path)
        except FileReadError as exc:
            return LifecycleResult.failure(str(old_path), exc)
        return self._run(new_path, lambda rel: self._rename(old_rel, rel, tenant, cancel))

    def update_promotion_level(
        self,
        path: Path | str,
        level: PromotionLevel | str,
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> LifecycleResult:
        """Change a document's promotion level and cascade it to all chunks atomically."""
        return self._run(path, lambda rel: self._promote(rel, level, tenant, cancel))

    def delete_tenant(self, tenant: TenantContext) -> int:
        """Delete every record of *tenant*.

        A read-only manager only clears its own document set.
        """
        doc_set = self.doc_set if self.read_only else None
        deleted = self.retry.call(
            f"delete tenant {tenant}", lambda: self.repository.delete_tenant(tenant, doc_set)
        )
        logger.info("Removed %d document(s) for %s", deleted, tenant)
        return deleted

    def index_batch(
        self,
        paths: Iterable[Path | str],
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> BatchResult:
        """Create or update many paths, persisting through the bulk upsert.

        Each path is prepared on its own; a failure (or skip) for one path
        never affects the others. Transient write failures are retried one by
        one after the bulk call.

        Raises:
            StoreUnavailableError: If the store goes away during the batch.
        """
        started = time.monotonic()
        batch = BatchResult()
        plans: list[_Plan] = []

        for path in paths:
            if cancel is not None and cancel.is_set():
                batch.add(
                    LifecycleResult.failure(str(path), OperationCancelled("batch cancelled"))
                )
                continue
            prepared = self._run(path, lambda rel: self._prepare_index(rel, tenant, cancel))
            if isinstance(prepared, _Plan):
                plans.append(prepared)
            else:
                batch.add(prepared)

        if plans:
            written = self.repository.save_documents([(p.document, p.chunks) for p in plans])
            failed = {f.key: f.error for f in written.failed}
            for plan in plans:
                error = failed.get(plan.document.id)
                if error is None:
                    batch.add(self._finish(plan))
                elif isinstance(error, KbsyncError) and error.transient:
                    batch.add(
                        self._run(
                            plan.document.relative_path,
                            lambda _rel, p=plan: self._persist(p, cancel),
                        )
                    )
                else:
                    batch.add(self._fail(plan.document.relative_path, error, plan.document.id))

        batch.duration = time.monotonic() - started
        logger.info(
            "Batch of %d: %d indexed, %d skipped, %d failed (%.2fs)",
            batch.total,
            batch.succeeded,
            batch.skipped,
            batch.failed,
            batch.duration,
        )
        return batch

    def delete_batch(
        self,
        paths: Iterable[str],
        tenant: TenantContext,
        cancel: threading.Event | None = None,
    ) -> BatchResult:
        """Delete the records of many relative paths through the bulk delete."""
        started = time.monotonic()
        batch = BatchResult()
        targets: dict[str, str] = {}  # document id -> relative path

        for path in paths:
            if cancel is not None and cancel.is_set():
                batch.add(
                    LifecycleResult.failure(str(path), OperationCancelled("batch cancelled"))
                )
                continue
            existing = self._lookup(tenant, path)
            if existing is None:
                batch.add(LifecycleResult.skip(path, SkipReason.NOT_FOUND))
            else:
                targets[existing.id] = path

        if targets:
            written = self.repository.delete_documents(list(targets))
            failed = {f.key: f.error for f in written.failed}
            for document_id, rel in targets.items():
                error = failed.get(document_id)
                if error is None:
                    logger.info("Deleted %s", rel)
                    batch.add(LifecycleResult.done(rel, document_id, Action.DELETED))
                else:
                    batch.add(self._fail(rel, error, document_id))

        batch.duration = time.monotonic() - started
        return batch

    # ------------------------------------------------------------------
    # Operation bodies (run inside _run)
    # ------------------------------------------------------------------

    def _create(
        self, rel: str, tenant: TenantContext, cancel: threading.Event | None
    ) -> LifecycleResult:
        existing = self._lookup(tenant, rel)
        if existing is not None:
            return self._update(rel, tenant, cancel, existing=existing)

        text = self._read(rel)
        if text is None:
            return LifecycleResult.skip(rel, SkipReason.FILE_NOT_FOUND)
        plan = self._prepare(rel, tenant, text, _new_id(), None, Action.CREATED, cancel)
        return self._persist(plan, cancel)

    def _update(
        self,
        rel: str,
        tenant: TenantContext,
        cancel: threading.Event | None,
        *,
        force: bool = False,
        existing: Document | None = None,
    ) -> LifecycleResult:
        text = self._read(rel)
        if text is None:
            return LifecycleResult.skip(rel, SkipReason.FILE_NOT_FOUND)

        existing = existing or self._lookup(tenant, rel)
        if existing is None:
            return LifecycleResult.skip(rel, SkipReason.NOT_FOUND)

        if not force and self._is_current(existing, content_hash(text)):
            logger.debug("Unchanged: %s", rel)
            return LifecycleResult.skip(
                rel, SkipReason.UNCHANGED, existing.id, existing.chunk_count
            )

        plan = self._prepare(
            rel, tenant, text, existing.id, existing.promotion_level, Action.UPDATED, cancel
        )
        return self._persist(plan, cancel)

    def _delete(
        self, rel: str, tenant: TenantContext, cancel: threading.Event | None
    ) -> LifecycleResult:
        existing = self._lookup(tenant, rel)
        if existing is None:
            logger.debug("Nothing stored for %s", rel)
            return LifecycleResult.skip(rel, SkipReason.NOT_FOUND)

        deleted = self.retry.call(
            f"delete {rel}", lambda: self.repository.delete_document(existing.id), cancel
        )
        if not deleted:
            # removed concurrently by another writer
            return LifecycleResult.skip(rel, SkipReason.NOT_FOUND, existing.id)
        logger.info("Deleted %s", rel)
        return LifecycleResult.done(rel, existing.id, Action.DELETED)

    def _rename(
        self,
        old_rel: str,
        new_rel: str,
        tenant: TenantContext,
        cancel: threading.Event | None,
    ) -> LifecycleResult:
        if old_rel == new_rel:
            return self._index_rel(new_rel, tenant, cancel)

        existing = self._lookup(tenant, old_rel)
        if existing is None:
            return self._create(new_rel, tenant, cancel)

        text = self._read(new_rel)
        if text is None:
            return LifecycleResult.skip(new_rel, SkipReason.FILE_NOT_FOUND, existing.id)

        occupant = self._lookup(tenant, new_rel)
        replace_ids = (occupant.id,) if occupant is not None and occupant.id != existing.id else ()

        if self._is_current(existing, content_hash(text)):
            self.retry.call(
                f"rename {old_rel}",
                lambda: self.repository.update_path(existing.id, new_rel, replace_ids=replace_ids),
                cancel,
            )
            logger.info("Renamed %s -> %s", old_rel, new_rel)
            return LifecycleResult.done(new_rel, existing.id, Action.RENAMED, existing.chunk_count)

        # Content drifted during the move: treat as a new document.
        plan = self._prepare(new_rel, tenant, text, _new_id(), None, Action.RENAMED, cancel)
        plan.replace_ids = (existing.id, *replace_ids)
        result = self._persist(plan, cancel)
        if result.success:
            logger.info("Replaced %s with new document at %s", old_rel, new_rel)
        return result

    def _promote(
        self,
        rel: str,
        level: PromotionLevel | str,
        tenant: TenantContext,
        cancel: threading.Event | None,
    ) -> LifecycleResult:
        if self.read_only:
            raise ReadOnlyError(f"Promotion is not allowed for the {self.doc_set.value} document set")
        try:
            target = level if isinstance(level, PromotionLevel) else PromotionLevel.parse(level)
        except ValueError as exc:
            raise ValidationError([str(exc)]) from exc
        if target not in self.doc_set.allowed_levels:
            raise ReadOnlyError(
                f"Level '{target.value}' is not allowed for the {self.doc_set.value} document set"
            )

        existing = self._lookup(tenant, rel)
        if existing is None:
            return LifecycleResult.skip(rel, SkipReason.NOT_FOUND)
        if existing.promotion_level is target:
            return LifecycleResult.skip(
                rel, SkipReason.PROMOTION_UNCHANGED, existing.id, existing.chunk_count
            )

        cascaded = self.chunks.cascade_promotion_level(existing.id, target, cancel)
        logger.info("Promoted %s to %s (%d chunks)", rel, target.value, cascaded)
        return LifecycleResult.done(rel, existing.id, Action.PROMOTED, cascaded)

    def _index_rel(
        self, rel: str, tenant: TenantContext, cancel: threading.Event | None
    ) -> LifecycleResult:
        existing = self._lookup(tenant, rel)
        if existing is not None:
            return self._update(rel, tenant, cancel, existing=existing)
        return self._create(rel, tenant, cancel)

    def _prepare_index(
        self, rel: str, tenant: TenantContext, cancel: threading.Event | None
    ) -> _Plan | LifecycleResult:
        text = self._read(rel)
        if text is None:
            return LifecycleResult.skip(rel, SkipReason.FILE_NOT_FOUND)
        existing = self._lookup(tenant, rel)
        if existing is None:
            return self._prepare(rel, tenant, text, _new_id(), None, Action.CREATED, cancel)
        if self._is_current(existing, content_hash(text)):
            return LifecycleResult.skip(
                rel, SkipReason.UNCHANGED, existing.id, existing.chunk_count
            )
        return self._prepare(
            rel, tenant, text, existing.id, existing.promotion_level, Action.UPDATED, cancel
        )

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def _prepare(
        self,
        rel: str,
        tenant: TenantContext,
        text: str,
        document_id: str,
        promotion_level: PromotionLevel | None,
        action: Action,
        cancel: threading.Event | None,
    ) -> _Plan:
        """Parse, validate, and embed *text*; build the chunk set when over the threshold."""
        parsed = self.parser.parse(text, fallback_title=PurePosixPath(rel).stem)
        validation = self.validator.validate(parsed)
        if not validation.is_valid:
            raise ValidationError(validation.errors, validation.warnings)
        for warning in validation.warnings:
            logger.debug("%s: %s", rel, warning)

        _check_cancel(cancel, rel)
        level = promotion_level or parsed.promotion_level
        if level not in self.doc_set.allowed_levels:
            level = PromotionLevel.STANDARD

        document = Document(
            id=document_id,
            tenant=tenant,
            relative_path=rel,
            content_hash=content_hash(text),
            embedding_model=self.embedder.model,
            title=parsed.title,
            summary=parsed.summary,
            doc_type=validation.doc_type,
            promotion_level=level,
            doc_set=self.doc_set,
            char_count=len(text),
            metadata=parsed.metadata_json,
            is_chunked=self.chunks.should_chunk(text),
        )
        document.embedding = self.embedder.embed(
            embed_text(parsed.title, parsed.content or text), cancel
        )

        chunks: list[Chunk] = []
        if document.is_chunked:
            body = parsed.content if parsed.content.strip() else text
            chunks = self.chunks.build_chunks(
                document,
                body,
                line_offset=line_count(text) - line_count(body),
                cancel=cancel,
            )
        return _Plan(document=document, chunks=chunks, action=action)

    def _persist(self, plan: _Plan, cancel: threading.Event | None) -> LifecycleResult:
        _check_cancel(cancel, plan.document.relative_path)
        self.retry.call(
            f"save {plan.document.relative_path}",
            lambda: self.repository.save_document(
                plan.document, plan.chunks, replace_ids=plan.replace_ids
            ),
            cancel,
        )
        return self._finish(plan)

    def _finish(self, plan: _Plan) -> LifecycleResult:
        doc = plan.document
        logger.info(
            "%s %s%s",
            plan.action.value.capitalize(),
            doc.relative_path,
            f" ({len(plan.chunks)} chunks)" if plan.chunks else "",
        )
        return LifecycleResult.done(doc.relative_path, doc.id, plan.action, len(plan.chunks))

    def _lookup(self, tenant: TenantContext, rel: str) -> Document | None:
        return self.retry.call(
            f"lookup {rel}", lambda: self.repository.get_by_path(tenant, rel, self.doc_set)
        )

    def _is_current(self, existing: Document, new_hash: str) -> bool:
        """Same content, embedded by the model currently in use."""
        return (
            existing.content_hash == new_hash
            and existing.embedding_model == self.embedder.model
        )

    def _read(self, rel: str) -> str | None:
        """Return file text, or None when the file no longer exists."""
        try:
            return read_text(self.root / rel)
        except FileNotFoundError:
            return None
        except IsADirectoryError as exc:
            raise FileReadError(rel, "is a directory") from exc
        except OSError as exc:
            raise FileReadError(rel, exc.strerror or str(exc)) from exc

    def relative_path(self, path: Path | str) -> str:
        """Normalise *path* (absolute or root-relative) to a POSIX path under the root.

        Raises:
            FileReadError: If *path* lies outside the root.
        """
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        # collapse ".." without following symlinks first; fall back to resolve()
        for absolute in (Path(os.path.normpath(candidate)), candidate.resolve()):
            try:
                return absolute.relative_to(self.root).as_posix()
            except ValueError:
                continue
        raise FileReadError(str(path), f"outside of {self.root}")

    # ------------------------------------------------------------------
    # Error boundary
    # ------------------------------------------------------------------

    def _run(self, path: Path | str, body: Callable[[str], _T]) -> _T | LifecycleResult:
        """Resolve *path*, run *body*, and convert lifecycle errors into a failed result."""
        try:
            rel = self.relative_path(path)
        except FileReadError as exc:
            return self._fail(str(path), exc)
        try:
            return body(rel)
        except StoreUnavailableError:
            raise
        except KbsyncError as exc:
            return self._fail(rel, exc)
        except Exception as exc:
            logger.exception("Unexpected error while processing %s", rel)
            return self._fail(rel, KbsyncError(f"{type(exc).__name__}: {exc}"))

    def _fail(self, rel: str, error: Exception, document_id: str | None = None) -> LifecycleResult:
        if not isinstance(error, KbsyncError):
            error = PersistenceError(str(error))
        logger.warning("%s failed [%s]: %s", rel, error.code.value, error)
        return LifecycleResult.failure(rel, error, document_id)


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_cancel(cancel: threading.Event | None, rel: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{rel}: cancelled")

