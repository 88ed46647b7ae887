"""Per-path debouncing of raw filesystem events.

Editors and git produce bursts (write, truncate, write, chmod...). Each path
gets its own quiet-window timer: every new event for the path restarts it, and
when it expires the single coalesced event is handed to the sink. Paths never
wait on each other.

Coalescing rules (previous pending kind + new kind → emitted kind):

==========  ==========  ==========
previous    new         result
==========  ==========  ==========
CREATED     CHANGED     CREATED
CREATED     DELETED     DELETED
DELETED     CREATED     CHANGED
DELETED     CHANGED     CHANGED
RENAMED     CHANGED     RENAMED
RENAMED     DELETED     DELETED (old path deleted too)
any         any         new
==========  ==========  ==========

A RENAMED event absorbs whatever is still pending on its old path.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from kbsync.watch.events import FileChangeEvent, FileChangeKind

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 500

_K = FileChangeKind


def coalesce(previous: FileChangeEvent | None, current: FileChangeEvent) -> FileChangeEvent:
    """Merge *current* into the pending *previous* event for the same path."""
    if previous is None:
        return current
    prev, new = previous.kind, current.kind
    if prev is _K.CREATED and new in (_K.CHANGED, _K.CREATED):
        return current.with_kind(_K.CREATED)
    if prev is _K.DELETED and new in (_K.CREATED, _K.CHANGED):
        return current.with_kind(_K.CHANGED)
    if prev is _K.CHANGED and new is _K.CREATED:
        return current.with_kind(_K.CHANGED)
    if prev is _K.RENAMED and new in (_K.CHANGED, _K.CREATED):
        return FileChangeEvent(
            path=current.path,
            kind=_K.RENAMED,
            old_path=previous.old_path,
            timestamp=current.timestamp,
        )
    return current


class FileChangeDebouncer:
    """Coalesce bursts of events per path and emit one event after a quiet window.

    Args:
        sink: Called with each settled event, from a timer thread.
        window_ms: Quiet window per path.
    """

    def __init__(
        self,
        sink: Callable[[FileChangeEvent], None],
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> None:
        if window_ms < 0:
            raise ValueError("window_ms must be >= 0")
        self._sink = sink
        self._window = window_ms / 1000
        self._lock = threading.Lock()
        self._pending: dict[Path, FileChangeEvent] = {}
        self._timers: dict[Path, threading.Timer] = {}
        self._closed = False

    def submit(self, event: FileChangeEvent) -> None:
        """Record a raw event; restarts the quiet window for its path."""
        follow_up: FileChangeEvent | None = None
        with self._lock:
            if self._closed:
                return

            if event.kind is _K.RENAMED and event.old_path is not None:
                absorbed = self._take(event.old_path)
                if absorbed is not None and absorbed.kind is _K.RENAMED:
                    # a -> b -> c within one window is a -> c
                    event = FileChangeEvent(
                        path=event.path,
                        kind=_K.RENAMED,
                        old_path=absorbed.old_path,
                        timestamp=event.timestamp,
                    )

            previous = self._pending.get(event.path)
            if previous is not None and previous.kind is _K.RENAMED and event.kind is _K.DELETED:
                follow_up = FileChangeEvent(previous.old_path, _K.DELETED)

            self._pending[event.path] = coalesce(previous, event)
            self._schedule(event.path)

        if follow_up is not None:
            self.submit(follow_up)

    def flush(self) -> int:
        """Emit every pending event now. Returns how many were emitted."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            events = list(self._pending.values())
            self._pending.clear()
        for event in events:
            self._emit(event)
        return len(events)

    def close(self, flush: bool = True) -> None:
        """Stop accepting events; pending ones are emitted when *flush* is True."""
        if flush:
            self.flush()
        with self._lock:
            self._closed = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _schedule(self, path: Path) -> None:
        # caller holds the lock
        old = self._timers.pop(path, None)
        if old is not None:
            old.cancel()
        timer = threading.Timer(self._window, self._fire, args=(path,))
        timer.daemon = True
        self._timers[path] = timer
        timer.start()

    def _take(self, path: Path) -> FileChangeEvent | None:
        # caller holds the lock
        timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()
        return self._pending.pop(path, None)

    def _fire(self, path: Path) -> None:
        with self._lock:
            # a newer event may have replaced this timer after it expired
            if self._timers.get(path) is not threading.current_thread():
                return
            del self._timers[path]
            event = self._pending.pop(path, None)
        if event is not None:
            self._emit(event)

    def _emit(self, event: FileChangeEvent) -> None:
        logger.debug("Settled %s %s", event.kind.value, event.path)
        try:
            self._sink(event)
        except Exception:
            logger.exception("Event sink failed for %s", event.path)
