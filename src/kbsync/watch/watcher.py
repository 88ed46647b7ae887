"""Filesystem watcher: turns ``watchfiles`` change batches into kbsync events."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from watchfiles import Change, watch

from kbsync.sync.scanner import PathFilter, is_temp_file
from kbsync.watch.events import FileChangeEvent, FileChangeKind

logger = logging.getLogger(__name__)

# watchfiles' own batching; per-path debouncing happens downstream.
_BATCH_MS = 50

_KINDS = {
    Change.added: FileChangeKind.CREATED,
    Change.modified: FileChangeKind.CHANGED,
    Change.deleted: FileChangeKind.DELETED,
}


class FileWatcher:
    """Watch *root* on a background thread and hand events to *sink*.

    Args:
        root: Directory to watch recursively.
        sink: Receives raw events (normally ``FileChangeDebouncer.submit``).
        path_filter: Include/exclude globs, applied to root-relative paths.
        stop_event: Set to stop watching; created if omitted.
    """

    def __init__(
        self,
        root: Path,
        sink: Callable[[FileChangeEvent], None],
        path_filter: PathFilter | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self._sink = sink
        self._filter = path_filter or PathFilter()
        self.stop_event = stop_event or threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name="kbsync-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run(self) -> None:
        """Blocking watch loop; returns when ``stop_event`` is set."""
        logger.info("Watching %s", self.root)
        for changes in watch(
            self.root,
            stop_event=self.stop_event,
            debounce=_BATCH_MS,
            step=_BATCH_MS,
            raise_interrupt=False,
        ):
            for event in self.translate(changes):
                self._sink(event)
        logger.info("Stopped watching %s", self.root)

    def translate(self, changes: Iterable[tuple[Change, str]]) -> list[FileChangeEvent]:
        """Filter one watchfiles batch and convert it to events.

        watchfiles has no rename event; a batch holding exactly one relevant
        deletion and one relevant addition is reported as a rename, which the
        lifecycle resolves by content hash either way.
        """
        latest: dict[Path, FileChangeKind] = {}
        for change, raw_path in changes:
            path = Path(raw_path)
            if not self._relevant(path):
                continue
            latest[path] = _KINDS[change]

        deleted = [p for p, k in latest.items() if k is FileChangeKind.DELETED]
        added = [p for p, k in latest.items() if k is FileChangeKind.CREATED]
        if len(deleted) == 1 and len(added) == 1:
            old, new = deleted[0], added[0]
            del latest[old]
            del latest[new]
            return [
                FileChangeEvent(new, FileChangeKind.RENAMED, old_path=old),
                *(FileChangeEvent(p, k) for p, k in latest.items()),
            ]
        return [FileChangeEvent(p, k) for p, k in latest.items()]

    def _relevant(self, path: Path) -> bool:
        if is_temp_file(path.name):
            return False
        try:
            rel = path.relative_to(self.root)
        except ValueError:
            return False
        # hidden directories (.git, .obsidian ...) are never indexed
        if any(part.startswith(".") for part in rel.parts[:-1]):
            return False
        return self._filter.matches(rel.as_posix())
