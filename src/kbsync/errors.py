"""Error taxonomy for the document lifecycle.

Every error carries a stable ``code`` so callers can branch on it without
matching on message text. Lifecycle operations catch these at their boundary
and turn them into failed results; only ``StoreUnavailableError`` is allowed to
abort a whole batch or reconciliation run.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    FILE_READ = "file_read_error"
    PARSE = "parse_error"
    VALIDATION = "validation_error"
    EMBEDDING = "embedding_error"
    PERSISTENCE = "persistence_error"
    STORE_UNAVAILABLE = "store_unavailable"
    NOT_FOUND = "not_found"
    READ_ONLY = "read_only"
    CANCELLED = "cancelled"
    INTERNAL = "internal_error"


class KbsyncError(Exception):
    """Base class for all lifecycle errors."""

    code: ErrorCode = ErrorCode.INTERNAL
    transient: bool = False


class FileReadError(KbsyncError):
    """The file is missing or unreadable. Treated as "nothing to index"."""

    code = ErrorCode.FILE_READ

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read '{path}'" + (f": {reason}" if reason else ""))


class ParseError(KbsyncError):
    """Raw document text could not be parsed.

    Attributes:
        field_errors: Mapping of front-matter field (or ``"frontmatter"``) to problem.
    """

    code = ErrorCode.PARSE

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        self.field_errors = dict(field_errors or {})
        super().__init__(message)


class ValidationError(KbsyncError):
    """Parsed document was rejected by its doc-type schema."""

    code = ErrorCode.VALIDATION

    def __init__(self, errors: list[str], warnings: list[str] | None = None) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors) or "validation failed")


class EmbeddingError(KbsyncError):
    """The embedding service failed or returned an unusable vector."""

    code = ErrorCode.EMBEDDING

    def __init__(self, message: str, *, transient: bool = True) -> None:
        self.transient = transient
        super().__init__(message)


class PersistenceError(KbsyncError):
    """A store write or read failed."""

    code = ErrorCode.PERSISTENCE

    def __init__(self, message: str, *, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class StoreUnavailableError(PersistenceError):
    """The store itself cannot be reached. Aborts the whole run."""

    code = ErrorCode.STORE_UNAVAILABLE

    def __init__(self, message: str) -> None:
        super().__init__(message, transient=False)


class NotFoundError(KbsyncError):
    """No record exists for the requested path or id."""

    code = ErrorCode.NOT_FOUND


class ReadOnlyError(KbsyncError):
    """A mutation was attempted on a read-only document set."""

    code = ErrorCode.READ_ONLY


class OperationCancelled(KbsyncError):
    """The cancellation signal was set while the operation was running."""

    code = ErrorCode.CANCELLED
