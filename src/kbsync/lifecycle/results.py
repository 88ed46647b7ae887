"""Structured outcomes of lifecycle operations.

Every lifecycle call returns one of these instead of raising, so batch and
reconciliation callers can record a failure and move on to the next path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from kbsync.errors import ErrorCode, KbsyncError


class SkipReason(str, Enum):
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    FILE_NOT_FOUND = "file_not_found"
    PROMOTION_UNCHANGED = "promotion_unchanged"


class Action(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RENAMED = "renamed"
    PROMOTED = "promoted"
    NONE = "none"


@dataclass
class LifecycleResult:
    """Outcome for one path.

    ``success`` is True for both applied changes and skips; ``skipped`` tells
    them apart. Failures carry ``error_code`` and ``error_message``.
    """

    success: bool
    relative_path: str
    document_id: str | None = None
    action: Action = Action.NONE
    skipped: bool = False
    skip_reason: SkipReason | None = None
    chunk_count: int = 0
    error_code: ErrorCode | None = None
    error_message: str | None = None

    @property
    def failed(self) -> bool:
        return not self.success

    @classmethod
    def done(
        cls,
        relative_path: str,
        document_id: str | None,
        action: Action,
        chunk_count: int = 0,
    ) -> LifecycleResult:
        return cls(
            success=True,
            relative_path=relative_path,
            document_id=document_id,
            action=action,
            chunk_count=chunk_count,
        )

    @classmethod
    def skip(
        cls,
        relative_path: str,
        reason: SkipReason,
        document_id: str | None = None,
        chunk_count: int = 0,
    ) -> LifecycleResult:
        return cls(
            success=True,
            relative_path=relative_path,
            document_id=document_id,
            skipped=True,
            skip_reason=reason,
            chunk_count=chunk_count,
        )

    @classmethod
    def failure(
        cls,
        relative_path: str,
        error: KbsyncError,
        document_id: str | None = None,
    ) -> LifecycleResult:
        return cls(
            success=False,
            relative_path=relative_path,
            document_id=document_id,
            error_code=error.code,
            error_message=str(error),
        )

    def describe(self) -> str:
        """Short human-readable summary, used by log lines and the CLI."""
        if self.failed:
            return f"{self.relative_path}: FAILED [{self.error_code.value}] {self.error_message}"
        if self.skipped:
            return f"{self.relative_path}: skipped ({self.skip_reason.value})"
        suffix = f", {self.chunk_count} chunks" if self.chunk_count else ""
        return f"{self.relative_path}: {self.action.value}{suffix}"


@dataclass
class BatchResult:
    """Aggregate of a batch run. ``failures`` keeps the individual failed results."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float = 0.0
    failures: list[LifecycleResult] = field(default_factory=list)
    results: list[LifecycleResult] = field(default_factory=list)

    def add(self, result: LifecycleResult) -> None:
        self.total += 1
        self.results.append(result)
        if result.failed:
            self.failed += 1
            self.failures.append(result)
        elif result.skipped:
            self.skipped += 1
        else:
            self.succeeded += 1
