"""Narrow store interfaces.

Writers and searchers are split so a test double for the lifecycle engine only
has to implement the transactional path, and a query layer only the read path.
``Repository`` implements both against the same SQLite store.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from kbsync.db.models import (
    BatchWriteResult,
    Chunk,
    Document,
    DocumentSet,
    PromotionLevel,
    SearchHit,
)
from kbsync.tenant import TenantContext


class DocumentWriter(Protocol):
    """Transactional path: every call is one atomic unit per document."""

    def get_by_path(
        self,
        tenant: TenantContext,
        relative_path: str,
        doc_set: DocumentSet = DocumentSet.PROJECT,
    ) -> Document | None: ...

    def list_documents(
        self, tenant: TenantContext, doc_set: DocumentSet = DocumentSet.PROJECT
    ) -> list[Document]: ...

    def save_document(
        self,
        document: Document,
        chunks: Sequence[Chunk],
        *,
        replace_ids: Sequence[str] = (),
    ) -> Document: ...

    def save_documents(
        self, items: Sequence[tuple[Document, Sequence[Chunk]]]
    ) -> BatchWriteResult: ...

    def delete_document(self, document_id: str) -> bool: ...

    def delete_documents(self, document_ids: Sequence[str]) -> BatchWriteResult: ...

    def delete_chunks(self, document_id: str) -> int: ...

    def replace_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> int: ...

    def update_path(
        self,
        document_id: str,
        new_relative_path: str,
        *,
        replace_ids: Sequence[str] = (),
    ) -> None: ...

    def update_promotion_level(self, document_id: str, level: PromotionLevel) -> int: ...

    def delete_tenant(
        self, tenant: TenantContext, doc_set: DocumentSet | None = None
    ) -> int: ...


class DocumentSearcher(Protocol):
    """Search path: tenant-scoped vector similarity plus plain lookups."""

    def get_by_id(self, document_id: str) -> Document | None: ...

    def get_by_path(
        self,
        tenant: TenantContext,
        relative_path: str,
        doc_set: DocumentSet = DocumentSet.PROJECT,
    ) -> Document | None: ...

    def search_documents(
        self,
        tenant: TenantContext,
        embedding: list[float],
        *,
        limit: int = 10,
        min_relevance: float = 0.0,
        doc_set: DocumentSet | None = None,
        min_promotion_level: PromotionLevel | None = None,
    ) -> list[SearchHit]: ...

    def search_chunks(
        self,
        tenant: TenantContext,
        embedding: list[float],
        *,
        limit: int = 10,
        min_relevance: float = 0.0,
        doc_set: DocumentSet | None = None,
        min_promotion_level: PromotionLevel | None = None,
    ) -> list[SearchHit]: ...
