"""Worker pool that applies debounced file events to the store.

Each worker owns a FIFO queue. A path always hashes to the same worker, so
events for one path are applied in arrival order while different paths are
processed in parallel. The queues are the only state shared with the
watcher side.
"""

from __future__ import annotations

import logging
import queue
import threading
import zlib
from collections.abc import Callable
from dataclasses import dataclass

from kbsync.errors import StoreUnavailableError
from kbsync.lifecycle.documents import DocumentLifecycleManager
from kbsync.lifecycle.results import LifecycleResult
from kbsync.tenant import TenantContext
from kbsync.watch.events import FileChangeEvent, FileChangeKind

logger = logging.getLogger(__name__)

_STOP = object()

EventHandler = Callable[[FileChangeEvent, threading.Event], LifecycleResult]


def lifecycle_handler(manager: DocumentLifecycleManager, tenant: TenantContext) -> EventHandler:
    """Map each event kind onto the matching lifecycle operation."""

    def _handle(event: FileChangeEvent, cancel: threading.Event) -> LifecycleResult:
        if event.kind is FileChangeKind.DELETED:
            return manager.delete(event.path, tenant, cancel)
        if event.kind is FileChangeKind.RENAMED:
            return manager.rename(event.old_path, event.path, tenant, cancel)
        return manager.index(event.path, tenant, cancel)

    return _handle


@dataclass
class ProcessorStats:
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0


class FileChangeProcessor:
    """Run *handler* for queued events on ``workers`` threads.

    Args:
        handler: Applies one event; must return a LifecycleResult.
        workers: Number of worker threads (each with its own queue).
        on_result: Optional callback for every result (called on the worker thread).
        cancel: Shared cancellation signal; created if omitted.
    """

    def __init__(
        self,
        handler: EventHandler,
        workers: int = 2,
        on_result: Callable[[FileChangeEvent, LifecycleResult], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._handler = handler
        self._on_result = on_result
        self.cancel = cancel or threading.Event()
        self._queues: list[queue.Queue] = [queue.Queue() for _ in range(workers)]
        self._threads: list[threading.Thread] = []
        self._stats_lock = threading.Lock()
        self.stats = ProcessorStats()

    @property
    def workers(self) -> int:
        return len(self._queues)

    def start(self) -> None:
        if self._threads:
            return
        for index, q in enumerate(self._queues):
            thread = threading.Thread(
                target=self._work, args=(q,), name=f"kbsync-worker-{index}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def submit(self, event: FileChangeEvent) -> None:
        """Queue *event* on the worker that owns its path. Safe from any thread."""
        self._queues[self.worker_for(event)].put(event)

    def worker_for(self, event: FileChangeEvent) -> int:
        # crc32 is stable across processes, unlike hash()
        return zlib.crc32(str(event.path).encode("utf-8")) % len(self._queues)

    def drain(self) -> None:
        """Block until every queued event has been processed."""
        for q in self._queues:
            q.join()

    def stop(self, drain: bool = True, timeout: float | None = None) -> None:
        """Stop the workers.

        With *drain*, queued events are finished first; otherwise the cancel
        signal is set so in-flight operations abandon at their next check.
        """
        if not drain:
            self.cancel.set()
        for q in self._queues:
            q.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()

    def _work(self, q: queue.Queue) -> None:
        while True:
            item = q.get()
            try:
                if item is _STOP:
                    return
                if self.cancel.is_set():
                    logger.debug("Dropping %s after cancellation", item.path)
                    continue
                self._process(item)
            finally:
                q.task_done()

    def _process(self, event: FileChangeEvent) -> None:
        try:
            result = self._handler(event, self.cancel)
        except StoreUnavailableError as exc:
            logger.error("Store unavailable, %s %s not applied: %s", event.kind.value, event.path, exc)
            with self._stats_lock:
                self.stats.processed += 1
                self.stats.failed += 1
            return
        except Exception:
            logger.exception("Handler failed for %s %s", event.kind.value, event.path)
            with self._stats_lock:
                self.stats.processed += 1
                self.stats.failed += 1
            return

        with self._stats_lock:
            self.stats.processed += 1
            if result.failed:
                self.stats.failed += 1
            elif result.skipped:
                self.stats.skipped += 1
            else:
                self.stats.succeeded += 1

        if self._on_result is not None:
            try:
                self._on_result(event, result)
            except Exception:
                logger.exception("Result callback failed for %s", event.path)
