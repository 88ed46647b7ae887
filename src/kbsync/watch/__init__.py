"""kbsync live watching: raw events → debouncer → per-path worker queues."""

from kbsync.watch.debouncer import FileChangeDebouncer
from kbsync.watch.events import FileChangeEvent, FileChangeKind
from kbsync.watch.processor import FileChangeProcessor, lifecycle_handler
from kbsync.watch.watcher import FileWatcher

__all__ = [
    "FileChangeDebouncer",
    "FileChangeEvent",
    "FileChangeKind",
    "FileChangeProcessor",
    "FileWatcher",
    "lifecycle_handler",
]
