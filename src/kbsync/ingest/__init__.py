"""kbsync ingest: markdown splitting, front matter parsing, doc types, embeddings."""

from kbsync.ingest.doctypes import DocTypeDefinition, DocTypeRegistry, DocTypeValidator
from kbsync.ingest.embedding import EmbeddingClient, LiteLLMEmbeddingClient, RetryingEmbeddingClient
from kbsync.ingest.frontmatter import FrontmatterParser, ParsedDocument
from kbsync.ingest.splitter import ChunkSpan, split

__all__ = [
    "ChunkSpan",
    "DocTypeDefinition",
    "DocTypeRegistry",
    "DocTypeValidator",
    "EmbeddingClient",
    "FrontmatterParser",
    "LiteLLMEmbeddingClient",
    "ParsedDocument",
    "RetryingEmbeddingClient",
    "split",
]
