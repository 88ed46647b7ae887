"""Project activation.

A :class:`KnowledgeSession` owns everything that lives for one activated
project: the tenant, the store connection, the embedding client, the
lifecycle managers for the project and external document sets, and the
background threads (startup reconciliation, live watching, periodic
reconciliation).

Typical use::

    session = KnowledgeSession.activate(Path("."), load_config())
    ...
    session.close()
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

from kbsync.config import KbsyncConfig
from kbsync.db.connection import Database
from kbsync.db.models import DocumentSet
from kbsync.db.repository import Repository
from kbsync.db.schema import initialize
from kbsync.errors import StoreUnavailableError
from kbsync.ingest.embedding import EmbeddingClient, LiteLLMEmbeddingClient, RetryingEmbeddingClient
from kbsync.lifecycle.documents import DocumentLifecycleManager
from kbsync.retry import RetryPolicy
from kbsync.sync.reconcile import ReconciliationEngine, ReconciliationResult, external_engine
from kbsync.sync.scanner import PathFilter
from kbsync.tenant import TenantContext
from kbsync.watch.debouncer import FileChangeDebouncer
from kbsync.watch.processor import FileChangeProcessor, lifecycle_handler
from kbsync.watch.watcher import FileWatcher

logger = logging.getLogger(__name__)


def resolve_under(root: Path, value: str | Path) -> Path:
    """*value* as an absolute path; relative values are taken from *root*."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


class KnowledgeSession:
    """Collaborators and background work for one activated project.

    Build with :meth:`open` (no threads) or :meth:`activate` (open + start).
    """

    def __init__(
        self,
        root: Path,
        config: KbsyncConfig,
        tenant: TenantContext,
        conn: sqlite3.Connection,
        repository: Repository,
        embedder: EmbeddingClient,
        manager: DocumentLifecycleManager,
        reconciler: ReconciliationEngine,
        external: ReconciliationEngine | None = None,
    ) -> None:
        self.root = root
        self.config = config
        self.tenant = tenant
        self.conn = conn
        self.repository = repository
        self.embedder = embedder
        self.manager = manager
        self.reconciler = reconciler
        self.external = external

        self.cancel = threading.Event()
        self.watcher: FileWatcher | None = None
        self.debouncer: FileChangeDebouncer | None = None
        self.processor: FileChangeProcessor | None = None
        self._threads: list[threading.Thread] = []
        self._results_lock = threading.Lock()
        self._results: list[ReconciliationResult] = []
        self._startup_done = threading.Event()
        self._closed = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        root: Path | str,
        config: KbsyncConfig,
        *,
        embedder: EmbeddingClient | None = None,
    ) -> KnowledgeSession:
        """Build the tenant and collaborators and open the store. Starts nothing.

        Raises:
            StoreUnavailableError: If the store cannot be opened.
        """
        root = Path(root).expanduser().resolve()
        tenant = TenantContext.for_root(
            root,
            branch_name=config.project.branch,
            project_name=config.project.name or None,
        )
        retry = RetryPolicy.from_config(config.retry)

        if embedder is None:
            embedder = RetryingEmbeddingClient(
                LiteLLMEmbeddingClient(
                    config.embedding.model,
                    config.embedding.dimensions,
                    config.embedding.timeout_seconds,
                ),
                retry,
            )

        conn = Database(resolve_under(root, config.project.db_path)).connect()
        try:
            initialize(conn)
            repository = Repository(
                conn, embedding_model=embedder.model, dimensions=embedder.dimensions
            )
        except sqlite3.Error as exc:
            conn.close()
            raise StoreUnavailableError(f"Cannot initialise store: {exc}") from exc
        except Exception:
            conn.close()
            raise

        manager = DocumentLifecycleManager(
            repository,
            embedder,
            resolve_under(root, config.watcher.docs_dir),
            threshold_lines=config.chunking.threshold_lines,
            retry=retry,
        )
        reconciler = ReconciliationEngine(
            manager,
            repository,
            PathFilter.of(config.watcher.include, config.watcher.exclude),
        )

        external = None
        if config.external.path:
            external = external_engine(
                repository,
                embedder,
                resolve_under(root, config.external.path),
                include=config.external.include,
                exclude=config.external.exclude,
                threshold_lines=config.chunking.threshold_lines,
                retry=retry,
            )

        logger.info("Activated %s (store %s)", tenant, config.project.db_path)
        return cls(root, config, tenant, conn, repository, embedder, manager, reconciler, external)

    @classmethod
    def activate(
        cls,
        root: Path | str,
        config: KbsyncConfig,
        *,
        embedder: EmbeddingClient | None = None,
        watch: bool = True,
    ) -> KnowledgeSession:
        """Open the session and start background work.

        Startup reconciliation runs on its own thread; live events arriving
        meanwhile are processed concurrently and both converge on disk state.
        """
        session = cls.open(root, config, embedder=embedder)
        session.start(watch=watch)
        return session

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def manager_for(self, doc_set: DocumentSet) -> DocumentLifecycleManager:
        """Lifecycle manager of *doc_set*.

        Raises:
            ValueError: If *doc_set* is external and no external path is configured.
        """
        if doc_set is DocumentSet.PROJECT:
            return self.manager
        if self.external is None:
            raise ValueError("No external document path configured (external.path)")
        return self.external.manager

    def reconcile(self, doc_set: DocumentSet = DocumentSet.PROJECT) -> ReconciliationResult:
        """Run one reconciliation of *doc_set* on the calling thread."""
        engine = self.reconciler
        if doc_set is DocumentSet.EXTERNAL:
            if self.external is None:
                raise ValueError("No external document path configured (external.path)")
            engine = self.external
        result = engine.run(self.tenant, self.cancel)
        with self._results_lock:
            self._results.append(result)
        return result

    def reconcile_all(self) -> list[ReconciliationResult]:
        results = [self.reconcile(DocumentSet.PROJECT)]
        if self.external is not None and not self.cancel.is_set():
            results.append(self.reconcile(DocumentSet.EXTERNAL))
        return results

    @property
    def results(self) -> list[ReconciliationResult]:
        """Every reconciliation result of this session, oldest first."""
        with self._results_lock:
            return list(self._results)

    def wait_for_startup(self, timeout: float | None = None) -> bool:
        """Block until the startup reconciliation has finished."""
        return self._startup_done.wait(timeout)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def start(self, watch: bool = True) -> None:
        """Start startup reconciliation, live watching, and periodic reconciliation."""
        self._spawn("kbsync-startup-reconcile", self._startup)

        if watch:
            self._start_watching()

        interval = self.config.reconcile.interval_seconds
        if interval > 0:
            self._spawn("kbsync-periodic-reconcile", lambda: self._periodic(interval))

    def _start_watching(self) -> None:
        if not self.manager.root.is_dir():
            logger.warning("Not watching %s: directory does not exist", self.manager.root)
            return
        self.processor = FileChangeProcessor(
            lifecycle_handler(self.manager, self.tenant),
            workers=self.config.watcher.workers,
        )
        self.processor.start()
        self.debouncer = FileChangeDebouncer(
            self.processor.submit, window_ms=self.config.watcher.debounce_ms
        )
        self.watcher = FileWatcher(
            self.manager.root,
            self.debouncer.submit,
            PathFilter.of(self.config.watcher.include, self.config.watcher.exclude),
        )
        self.watcher.start()

    def _startup(self) -> None:
        try:
            self._reconcile_safely()
        finally:
            self._startup_done.set()

    def _periodic(self, interval: float) -> None:
        while not self.cancel.wait(interval):
            self._reconcile_safely()

    def _reconcile_safely(self) -> None:
        try:
            self.reconcile_all()
        except StoreUnavailableError as exc:
            logger.error("Reconciliation aborted, store unavailable: %s", exc)
        except Exception:
            logger.exception("Reconciliation failed")

    def _spawn(self, name: str, target) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self, timeout: float | None = 10.0) -> None:
        """Cancel reconciliation, flush and drain live events, join threads, close the store.

        Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        self.cancel.set()

        if self.watcher is not None:
            self.watcher.stop(timeout)
        if self.debouncer is not None:
            self.debouncer.close(flush=True)
        if self.processor is not None:
            self.processor.stop(drain=True, timeout=timeout)
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()

        self.conn.close()
        logger.info("Closed %s", self.tenant)

    def __enter__(self) -> KnowledgeSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
