"""Per-corpus sqlite-vec virtual table management."""

from __future__ import annotations

import re
import sqlite3

# vec0 distance_metric option -> scalar distance function for exact scans
DISTANCE_FUNCTIONS: dict[str, str] = {
    "cosine": "vec_distance_cosine",
    "l2": "vec_distance_L2",
}


def vec_table_name(corpus_id: str) -> str:
    """Return the vec table name holding the embeddings of *corpus_id*."""
    return f"vec_{corpus_id}"


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    return (
        conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ).fetchone()
        is not None
    )


def ensure_vec_table(
    conn: sqlite3.Connection, corpus_id: str, dimensions: int, metric: str = "cosine"
) -> str:
    """Create vec_<corpus_id> if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        corpus_id: Corpus identifier (see lodestar.tags.corpus_id()).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).
        metric: ``cosine`` or ``l2``; fixed for the lifetime of the table.

    Returns:
        The table name.
    """
    if not re.fullmatch(r"[a-z0-9_]+", corpus_id):
        raise ValueError(
            f"Invalid corpus id '{corpus_id}'; use lodestar.tags.corpus_id() to derive it."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    if metric not in DISTANCE_FUNCTIONS:
        raise ValueError(f"Unsupported distance metric '{metric}'")

    table = vec_table_name(corpus_id)
    if not vec_table_exists(conn, table):
        # Another connection may create it between the check and here.
        conn.execute(
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING vec0("
            f"embedding float[{dimensions}] distance_metric={metric})"
        )
        conn.commit()

    return table
