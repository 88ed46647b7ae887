"""Chunk lifecycle: decide whether a document is chunked and keep its chunk set whole.

Chunks are never patched. Any content change deletes the whole set and
rebuilds it from the new text; the repository swaps old for new in one
transaction.
"""

from __future__ import annotations

import logging
import threading

from kbsync.db.models import Chunk, Document, PromotionLevel
from kbsync.db.protocols import DocumentWriter
from kbsync.errors import OperationCancelled
from kbsync.ingest.embedding import EmbeddingClient
from kbsync.ingest.splitter import HEADER_PATH_SEPARATOR, ChunkSpan, split
from kbsync.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_LINES = 500

# Embedding inputs are capped; stored content is always kept in full.
EMBED_MAX_CHARS = 24_000


def line_count(content: str) -> int:
    """Number of lines in *content*; a trailing newline does not start a new line."""
    return len(content.splitlines())


def embed_text(title: str, body: str, header_path: str = "") -> str:
    """Text sent to the embedding model for a document or one of its chunks."""
    heading = HEADER_PATH_SEPARATOR.join(p for p in (title, header_path) if p)
    text = f"{heading}\n\n{body}" if heading else body
    return text[:EMBED_MAX_CHARS]


class ChunkLifecycle:
    """Create, regenerate, and remove the chunk set of one parent document.

    ``DocumentLifecycleManager`` builds chunk sets with ``build_chunks`` and hands the
    result to ``save_document`` together with the parent row, so a parent and
    its chunks always land in one transaction. ``create_chunks``,
    ``update_chunks`` and ``delete_chunks`` act on a parent that is already
    stored, for callers that own the parent row themselves; each is one
    transaction that also updates the parent's ``is_chunked``/``chunk_count``.

    Args:
        writer: Transactional store path.
        embedder: Client used for one embedding per chunk.
        threshold_lines: Documents with more lines than this are chunked.
        retry: Policy for store writes.
    """

    def __init__(
        self,
        writer: DocumentWriter,
        embedder: EmbeddingClient,
        threshold_lines: int = DEFAULT_THRESHOLD_LINES,
        retry: RetryPolicy | None = None,
    ) -> None:
        if threshold_lines < 1:
            raise ValueError("threshold_lines must be >= 1")
        self.writer = writer
        self.embedder = embedder
        self.threshold_lines = threshold_lines
        self.retry = retry or RetryPolicy()

    def should_chunk(self, content: str) -> bool:
        return line_count(content) > self.threshold_lines

    def build_chunks(
        self,
        document: Document,
        content: str,
        *,
        line_offset: int = 0,
        cancel: threading.Event | None = None,
    ) -> list[Chunk]:
        """Split *content* and embed each span, without touching the store.

        Embeddings are generated one at a time, in order. Content with no
        headings becomes a single whole-document chunk.

        Args:
            document: Parent; supplies id, scope, and promotion level.
            content: Text to split (front matter already removed).
            line_offset: Added to span line numbers so they refer to the file.
            cancel: Checked before every embedding call.
        """
        spans = split(content)
        if not spans:
            spans = [ChunkSpan("", content, 0, max(line_count(content) - 1, 0))]

        chunks: list[Chunk] = []
        for index, span in enumerate(spans):
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"chunking {document.relative_path} cancelled")
            embedding = self.embedder.embed(
                embed_text(document.title, span.content, span.header_path), cancel
            )
            chunks.append(
                Chunk(
                    document_id=document.id,
                    chunk_index=index,
                    content=span.content,
                    tenant=document.tenant,
                    header_path=span.header_path,
                    start_line=span.start_line + line_offset,
                    end_line=span.end_line + line_offset,
                    promotion_level=document.promotion_level,
                    doc_set=document.doc_set,
                    embedding=embedding,
                )
            )
        return chunks

    def create_chunks(
        self,
        document: Document,
        content: str,
        cancel: threading.Event | None = None,
    ) -> list[Chunk]:
        """Build and persist the chunk set of an already-stored document.

        Raises:
            ValueError: If *content* is not over the threshold.
        """
        if not self.should_chunk(content):
            raise ValueError(
                f"{document.relative_path} has {line_count(content)} lines; "
                f"chunking starts above {self.threshold_lines}"
            )
        chunks = self.build_chunks(document, content, cancel=cancel)
        self.retry.call(
            f"replace chunks of {document.relative_path}",
            lambda: self.writer.replace_chunks(document.id, chunks),
            cancel,
        )
        document.is_chunked = True
        document.chunk_count = len(chunks)
        logger.debug("Created %d chunks for %s", len(chunks), document.relative_path)
        return chunks

    def update_chunks(
        self,
        document: Document,
        new_content: str,
        cancel: threading.Event | None = None,
    ) -> list[Chunk]:
        """Regenerate chunks for *new_content*; de-chunk when it fell below the threshold."""
        if not self.should_chunk(new_content):
            self.delete_chunks(document.id, cancel)
            document.is_chunked = False
            document.chunk_count = 0
            return []
        return self.create_chunks(document, new_content, cancel)

    def delete_chunks(self, document_id: str, cancel: threading.Event | None = None) -> int:
        """Delete every chunk of *document_id*. Returns 0 when there were none."""
        return self.retry.call(
            f"delete chunks of {document_id}",
            lambda: self.writer.delete_chunks(document_id),
            cancel,
        )

    def cascade_promotion_level(
        self,
        document_id: str,
        level: PromotionLevel,
        cancel: threading.Event | None = None,
    ) -> int:
        """Set the parent's level and mirror it onto every chunk in one transaction."""
        return self.retry.call(
            f"promote {document_id}",
            lambda: self.writer.update_promotion_level(document_id, level),
            cancel,
        )
