"""Reconciliation: full-scan diff between disk and store.

Used at project activation, periodically while watching, and for the
read-only external document set. The plan is a pure function of the disk
scan and the stored records; applying it goes through the same lifecycle
operations as live events, so a reconciliation racing a watcher event
converges on the same state whichever one writes last.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from kbsync.db.models import Document, DocumentSet
from kbsync.db.protocols import DocumentWriter
from kbsync.errors import FileReadError, OperationCancelled
from kbsync.ingest.embedding import EmbeddingClient
from kbsync.lifecycle.documents import DocumentLifecycleManager
from kbsync.lifecycle.results import Action, BatchResult, LifecycleResult
from kbsync.retry import RetryPolicy
from kbsync.sync.scanner import PathFilter, ScannedFile, scan
from kbsync.tenant import TenantContext

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    INDEX = "index"
    UPDATE = "update"
    SKIP = "skip"
    DELETE = "delete"


@dataclass(frozen=True)
class ReconcileItem:
    relative_path: str
    action: ReconcileAction
    reason: str
    document_id: str | None = None


@dataclass
class ReconcilePlan:
    items: list[ReconcileItem] = field(default_factory=list)
    files_on_disk: int = 0
    records_in_store: int = 0

    def paths(self, action: ReconcileAction) -> list[str]:
        return [i.relative_path for i in self.items if i.action is action]

    @property
    def total_actions(self) -> int:
        return sum(1 for i in self.items if i.action is not ReconcileAction.SKIP)

    @property
    def has_changes(self) -> bool:
        return self.total_actions > 0


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run."""

    doc_set: DocumentSet = DocumentSet.PROJECT
    files_scanned: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    duration: float = 0.0
    cancelled: bool = False
    error: str | None = None
    failures: list[LifecycleResult] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        """True when the run stopped before planning; nothing was written."""
        return self.error is not None

    @property
    def total_actions(self) -> int:
        return self.added + self.updated + self.deleted

    def absorb(self, batch: BatchResult) -> None:
        for result in batch.results:
            if result.failed:
                self.failed += 1
                self.failures.append(result)
            elif result.skipped:
                self.skipped += 1
            elif result.action is Action.CREATED:
                self.added += 1
            elif result.action is Action.UPDATED:
                self.updated += 1
            elif result.action is Action.DELETED:
                self.deleted += 1


def build_plan(
    disk: dict[str, ScannedFile],
    records: Sequence[Document],
    embedding_model: str | None = None,
) -> ReconcilePlan:
    """Diff a disk scan against stored records.

    Absent in store → INDEX; different hash (or a stale embedding model) →
    UPDATE; same hash → SKIP; stored but not on disk → DELETE.
    """
    by_path = {r.relative_path: r for r in records}
    plan = ReconcilePlan(files_on_disk=len(disk), records_in_store=len(records))

    for rel in sorted(disk):
        record = by_path.get(rel)
        if record is None:
            plan.items.append(ReconcileItem(rel, ReconcileAction.INDEX, "new file on disk"))
        elif record.content_hash != disk[rel].content_hash:
            plan.items.append(
                ReconcileItem(rel, ReconcileAction.UPDATE, "content changed", record.id)
            )
        elif embedding_model is not None and record.embedding_model != embedding_model:
            plan.items.append(
                ReconcileItem(
                    rel,
                    ReconcileAction.UPDATE,
                    f"embedded with {record.embedding_model}",
                    record.id,
                )
            )
        else:
            plan.items.append(ReconcileItem(rel, ReconcileAction.SKIP, "unchanged", record.id))

    for rel in sorted(set(by_path) - set(disk)):
        plan.items.append(
            ReconcileItem(rel, ReconcileAction.DELETE, "missing on disk", by_path[rel].id)
        )
    return plan


class ReconciliationEngine:
    """Bring the store in line with the files under ``manager.root``.

    Args:
        manager: Lifecycle manager for the document set being reconciled.
        repository: Store path used to list existing records.
        path_filter: Include/exclude globs; exclude wins.
    """

    def __init__(
        self,
        manager: DocumentLifecycleManager,
        repository: DocumentWriter,
        path_filter: PathFilter | None = None,
    ) -> None:
        self.manager = manager
        self.repository = repository
        self.path_filter = path_filter or PathFilter()

    @property
    def root(self) -> Path:
        return self.manager.root

    @property
    def doc_set(self) -> DocumentSet:
        return self.manager.doc_set

    @property
    def read_only(self) -> bool:
        return self.manager.read_only

    def plan(self, tenant: TenantContext, cancel: threading.Event | None = None) -> ReconcilePlan:
        """Scan disk and store and return the actions a run would take.

        Raises:
            FileReadError: If the root directory is missing.
            OperationCancelled: If *cancel* is set during the scan.
        """
        disk = scan(self.root, self.path_filter, cancel)
        records = self.manager.retry.call(
            "list documents",
            lambda: self.repository.list_documents(tenant, self.doc_set),
            cancel,
        )
        return build_plan(disk, records, self.manager.embedder.model)

    def run(self, tenant: TenantContext, cancel: threading.Event | None = None) -> ReconciliationResult:
        """Apply the plan. Per-file failures are recorded, never raised.

        A missing root aborts the run before any action is taken and is
        reported through ``result.error``.

        Raises:
            StoreUnavailableError: If the store cannot be reached at all.
        """
        started = time.monotonic()
        result = ReconciliationResult(doc_set=self.doc_set)
        logger.info("Reconciling %s (%s set) for %s", self.root, self.doc_set.value, tenant)

        try:
            plan = self.plan(tenant, cancel)
            result.files_scanned = plan.files_on_disk
            result.skipped = len(plan.paths(ReconcileAction.SKIP))

            to_index = plan.paths(ReconcileAction.INDEX) + plan.paths(ReconcileAction.UPDATE)
            if to_index:
                result.absorb(self.manager.index_batch(to_index, tenant, cancel))
            to_delete = plan.paths(ReconcileAction.DELETE)
            if to_delete:
                result.absorb(self.manager.delete_batch(to_delete, tenant, cancel))
        except FileReadError as exc:
            logger.error("Reconciliation of %s aborted: %s", self.root, exc)
            result.error = str(exc)
        except OperationCancelled:
            logger.info("Reconciliation of %s cancelled", self.root)
            result.cancelled = True

        if cancel is not None and cancel.is_set():
            result.cancelled = True
        result.duration = time.monotonic() - started
        logger.info(
            "Reconciled %s: %d scanned, %d added, %d updated, %d deleted, %d failed (%.2fs)",
            self.doc_set.value,
            result.files_scanned,
            result.added,
            result.updated,
            result.deleted,
            result.failed,
            result.duration,
        )
        return result


def external_engine(
    repository: DocumentWriter,
    embedder: EmbeddingClient,
    root: Path,
    *,
    include: Iterable[str] = ("**/*.md",),
    exclude: Iterable[str] = (),
    threshold_lines: int = 500,
    retry: RetryPolicy | None = None,
) -> ReconciliationEngine:
    """Reconciliation engine for the read-only external document set.

    Same algorithm as the project set. It only ever touches its own store
    records; source files are never written and promotion changes on these
    records are refused by the lifecycle manager.
    """
    manager = DocumentLifecycleManager(
        repository,
        embedder,
        root,
        threshold_lines=threshold_lines,
        doc_set=DocumentSet.EXTERNAL,
        retry=retry,
    )
    return ReconciliationEngine(manager, repository, PathFilter.of(include, exclude))
