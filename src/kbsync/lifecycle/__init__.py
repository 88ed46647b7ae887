"""kbsync lifecycle: document and chunk create/update/delete/rename."""

from kbsync.lifecycle.chunks import ChunkLifecycle
from kbsync.lifecycle.documents import DocumentLifecycleManager
from kbsync.lifecycle.results import Action, BatchResult, LifecycleResult, SkipReason

__all__ = [
    "Action",
    "BatchResult",
    "ChunkLifecycle",
    "DocumentLifecycleManager",
    "LifecycleResult",
    "SkipReason",
]
