"""kbsync store layer: SQLite rows plus sqlite-vec vectors."""

from kbsync.db.connection import Database
from kbsync.db.migrations import MIGRATIONS, run_migrations
from kbsync.db.models import Chunk, Document, DocumentSet, PromotionLevel, SearchHit
from kbsync.db.protocols import DocumentSearcher, DocumentWriter
from kbsync.db.repository import Repository
from kbsync.db.schema import initialize
from kbsync.db.vectors import ensure_vec_table, ensure_vec_tables, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Chunk",
    "Document",
    "DocumentSet",
    "PromotionLevel",
    "SearchHit",
    "DocumentSearcher",
    "DocumentWriter",
    "Repository",
    "ensure_vec_table",
    "ensure_vec_tables",
    "model_to_slug",
    "vec_table_name",
]
