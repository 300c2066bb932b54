"""Lodestar local storage layer (SQLite + sqlite-vec)."""

from lodestar.db.connection import Database
from lodestar.db.migrations import MIGRATIONS, run_migrations
from lodestar.db.models import Chunk, Corpus, ScoredChunk
from lodestar.db.schema import initialize
from lodestar.db.vectors import ensure_vec_table, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Chunk",
    "Corpus",
    "ScoredChunk",
    "ensure_vec_table",
    "vec_table_name",
]
