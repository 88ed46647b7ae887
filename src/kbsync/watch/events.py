"""File change events flowing from the watcher through the debouncer to workers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class FileChangeKind(str, Enum):
    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class FileChangeEvent:
    """One change to one path.

    Attributes:
        path: Absolute path the event is about (the new path for renames).
        kind: What happened.
        old_path: Previous absolute path; set only for ``RENAMED``.
        timestamp: ``time.monotonic()`` when the change was observed.
    """

    path: Path
    kind: FileChangeKind
    old_path: Path | None = None
    timestamp: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        if self.kind is FileChangeKind.RENAMED and self.old_path is None:
            raise ValueError("RENAMED events need old_path")

    def with_kind(self, kind: FileChangeKind) -> FileChangeEvent:
        """Copy with a different kind; ``old_path`` is kept only for renames."""
        return FileChangeEvent(
            path=self.path,
            kind=kind,
            old_path=self.old_path if kind is FileChangeKind.RENAMED else None,
            timestamp=self.timestamp,
        )
