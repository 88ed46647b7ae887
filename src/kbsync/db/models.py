"""Domain models for the kbsync store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum

from kbsync.tenant import TenantContext

CHUNK_ID_FORMAT = "{document_id}-chunk-{index:04d}"


class PromotionLevel(str, Enum):
    """Visibility tier of a document, mirrored onto its chunks."""

    STANDARD = "standard"
    IMPORTANT = "important"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PROMOTION_RANK[self]

    @classmethod
    def parse(cls, value: str) -> PromotionLevel:
        """Accept any casing; raise ValueError for unknown levels."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(level.value for level in cls)
            raise ValueError(f"Unknown promotion level '{value}' (expected one of: {allowed})") from None


_PROMOTION_RANK = {
    PromotionLevel.STANDARD: 0,
    PromotionLevel.IMPORTANT: 1,
    PromotionLevel.CRITICAL: 2,
}


class DocumentSet(str, Enum):
    """Which logical collection a record belongs to within a tenant."""

    PROJECT = "project"
    EXTERNAL = "external"

    @property
    def read_only(self) -> bool:
        return self is DocumentSet.EXTERNAL

    @property
    def allowed_levels(self) -> tuple[PromotionLevel, ...]:
        if self is DocumentSet.EXTERNAL:
            return (PromotionLevel.STANDARD,)
        return tuple(PromotionLevel)


def chunk_id(document_id: str, index: int) -> str:
    """Deterministic chunk id: ``{document_id}-chunk-{0000}``."""
    return CHUNK_ID_FORMAT.format(document_id=document_id, index=index)


@dataclass
class Document:
    id: str
    tenant: TenantContext
    relative_path: str
    content_hash: str
    embedding_model: str
    title: str = ""
    summary: str = ""
    doc_type: str = "doc"
    promotion_level: PromotionLevel = PromotionLevel.STANDARD
    doc_set: DocumentSet = DocumentSet.PROJECT
    char_count: int = 0
    metadata: str = field(default_factory=lambda: "{}")
    is_chunked: bool = False
    chunk_count: int = 0
    embedding: list[float] | None = None  # loaded on demand, see Repository.get_embedding
    indexed_at: str | None = None
    updated_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved documents

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class Chunk:
    document_id: str
    chunk_index: int
    content: str
    tenant: TenantContext
    header_path: str = ""
    start_line: int = 0
    end_line: int = 0
    promotion_level: PromotionLevel = PromotionLevel.STANDARD
    doc_set: DocumentSet = DocumentSet.PROJECT
    embedding: list[float] | None = None
    created_at: str | None = None
    rowid: int | None = None

    @property
    def id(self) -> str:
        return chunk_id(self.document_id, self.chunk_index)


@dataclass
class SearchHit:
    """One ranked result from the search path.

    ``chunk`` is set for chunk hits; ``document`` is always the owning document.
    """

    document: Document
    similarity: float
    chunk: Chunk | None = None

    @property
    def relative_path(self) -> str:
        return self.document.relative_path


@dataclass
class WriteFailure:
    key: str
    error: Exception


@dataclass
class BatchWriteResult:
    """Per-item outcome of a bulk repository call. Items succeed or fail independently."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[WriteFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
