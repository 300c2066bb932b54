"""Repository pattern for all local index database operations.

Single interface for: corpora registry, chunks, per-corpus vec embeddings.
Write methods do NOT commit; group them inside ``transaction()`` so an
insert/delete batch lands in the database all at once or not at all.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from lodestar.db.models import Chunk, Corpus
from lodestar.db.vectors import DISTANCE_FUNCTIONS, ensure_vec_table, vec_table_exists

_CHUNK_COLUMNS = "seq, id, filepath, start_line, end_line, content, content_hash"


class Repository:
    """Data access layer for corpora, chunks and embeddings.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see lodestar.db.schema.initialize).
        """
        self._conn = conn

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit everything executed inside the block, or roll it all back."""
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()

    # ------------------------------------------------------------------
    # Corpora
    # ------------------------------------------------------------------

    def add_corpus(self, corpus: Corpus) -> str:
        """Register *corpus* (idempotent) and create its vec table. Returns the table name."""
        self._conn.execute(
            """
            INSERT OR IGNORE INTO corpora (id, directory, branch, embedding_model, dimensions, metric)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                corpus.id,
                corpus.directory,
                corpus.branch,
                corpus.embedding_model,
                corpus.dimensions,
                corpus.metric,
            ),
        )
        self._conn.commit()
        return ensure_vec_table(self._conn, corpus.id, corpus.dimensions, corpus.metric)

    def get_corpus(self, corpus_id: str) -> Corpus | None:
        row = self._conn.execute(
            """
            SELECT id, directory, branch, embedding_model, dimensions, metric, created_at
            FROM corpora WHERE id = ?
            """,
            (corpus_id,),
        ).fetchone()
        return _row_to_corpus(row) if row else None

    def list_corpora(self) -> list[Corpus]:
        """Return all registered corpora, oldest first."""
        rows = self._conn.execute(
            """
            SELECT id, directory, branch, embedding_model, dimensions, metric, created_at
            FROM corpora ORDER BY created_at, id
            """
        ).fetchall()
        return [_row_to_corpus(r) for r in rows]

    # ------------------------------------------------------------------
    # Chunks + embeddings
    # ------------------------------------------------------------------

    def count_chunks(self, corpus_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE corpus_id = ?", (corpus_id,)
        ).fetchone()[0]

    def chunk_fingerprints(self, corpus_id: str) -> dict[str, str]:
        """Return {chunk id: filepath} for every stored chunk of *corpus_id*."""
        rows = self._conn.execute(
            "SELECT id, filepath FROM chunks WHERE corpus_id = ?", (corpus_id,)
        ).fetchall()
        return {r["id"]: r["filepath"] for r in rows}

    def add_chunk(self, corpus_id: str, vec_table: str, chunk: Chunk) -> int:
        """Insert *chunk* and its embedding. Returns the new rowid (not committed)."""
        if chunk.embedding is None:
            raise ValueError(f"Chunk {chunk.id} has no embedding")
        cur = self._conn.execute(
            """
            INSERT INTO chunks (corpus_id, id, filepath, start_line, end_line, content, content_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (corpus_id, id) DO NOTHING
            """,
            (
                corpus_id,
                chunk.id,
                chunk.filepath,
                chunk.start_line,
                chunk.end_line,
                chunk.content,
                chunk.content_hash,
            ),
        )
        if cur.rowcount == 0:
            # Already stored: the id pins range + content, so the row is identical.
            row = self._conn.execute(
                "SELECT seq FROM chunks WHERE corpus_id = ? AND id = ?",
                (corpus_id, chunk.id),
            ).fetchone()
            chunk.rowid = row["seq"]
            return chunk.rowid
        rowid = cur.lastrowid
        self._conn.execute(
            f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
            (rowid, json.dumps(chunk.embedding)),
        )
        chunk.rowid = rowid
        return rowid

    def delete_chunks(self, corpus_id: str, vec_table: str, chunk_ids: list[str]) -> int:
        """Delete chunks (and their embeddings) by id. Returns rows deleted (not committed)."""
        if not chunk_ids:
            return 0
        deleted = 0
        for batch in _batched(chunk_ids, 500):
            placeholders = ",".join("?" * len(batch))
            seqs = [
                r[0]
                for r in self._conn.execute(
                    f"SELECT seq FROM chunks WHERE corpus_id = ? AND id IN ({placeholders})",
                    [corpus_id, *batch],
                ).fetchall()
            ]
            if not seqs:
                continue
            seq_placeholders = ",".join("?" * len(seqs))
            if vec_table_exists(self._conn, vec_table):
                self._conn.execute(
                    f"DELETE FROM {vec_table} WHERE rowid IN ({seq_placeholders})", seqs
                )
            cur = self._conn.execute(
                f"DELETE FROM chunks WHERE seq IN ({seq_placeholders})", seqs
            )
            deleted += cur.rowcount
        return deleted

    def get_chunks_by_rowid(self, rowids: list[int]) -> dict[int, Chunk]:
        if not rowids:
            return {}
        placeholders = ",".join("?" * len(rowids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE seq IN ({placeholders})",
            rowids,
        ).fetchall()
        return {r["seq"]: _row_to_chunk(r) for r in rows}

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_vec(
        self, vec_table: str, embedding: list[float], limit: int = 10
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, distance) sorted by distance."""
        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {vec_table} "
            "WHERE embedding MATCH ? AND k = ? ORDER BY distance",
            (json.dumps(embedding), limit),
        ).fetchall()

        chunks = self.get_chunks_by_rowid([r["rowid"] for r in vec_rows])
        results: list[tuple[Chunk, float]] = []
        for vec_row in vec_rows:
            chunk = chunks.get(vec_row["rowid"])
            if chunk is not None:
                results.append((chunk, vec_row["distance"]))
        return results

    def search_vec_under(
        self,
        corpus_id: str,
        vec_table: str,
        embedding: list[float],
        path_prefix: str,
        limit: int = 10,
        metric: str = "cosine",
    ) -> list[tuple[Chunk, float]]:
        """Exact scan over chunks whose filepath lies under *path_prefix*."""
        distance_fn = DISTANCE_FUNCTIONS[metric]
        base = path_prefix.rstrip("/\\")
        rows = self._conn.execute(
            f"""
            SELECT c.seq, c.id, c.filepath, c.start_line, c.end_line, c.content, c.content_hash,
                   {distance_fn}(v.embedding, ?) AS distance
            FROM chunks c JOIN {vec_table} v ON v.rowid = c.seq
            WHERE c.corpus_id = ?
              AND (c.filepath = ? OR substr(c.filepath, 1, ?) IN (?, ?))
            ORDER BY distance
            LIMIT ?
            """,
            (
                json.dumps(embedding),
                corpus_id,
                base,
                len(base) + 1,
                base + "/",
                base + "\\",
                limit,
            ),
        ).fetchall()
        return [(_row_to_chunk(r), r["distance"]) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _batched(items: list[str], size: int) -> Iterator[list[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _row_to_corpus(row: sqlite3.Row) -> Corpus:
    return Corpus(
        id=row["id"],
        directory=row["directory"],
        branch=row["branch"],
        embedding_model=row["embedding_model"],
        dimensions=row["dimensions"],
        metric=row["metric"],
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["seq"],
        id=row["id"],
        filepath=row["filepath"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        content=row["content"],
        content_hash=row["content_hash"],
    )
