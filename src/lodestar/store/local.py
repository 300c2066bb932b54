"""Local chunk store: one SQLite database with a sqlite-vec table per corpus.

Each thread gets its own connection, so queries read the last committed
state while a reindex holds a write transaction on another thread.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from lodestar.db.connection import Database
from lodestar.db.models import Chunk, Corpus, ScoredChunk
from lodestar.db.repository import Repository
from lodestar.db.schema import initialize
from lodestar.db.vectors import vec_table_exists, vec_table_name
from lodestar.exceptions import StorageUnavailable
from lodestar.store.base import ChunkStore, check_corpus_matches
from lodestar.tags import Tag, corpus_id as make_corpus_id


class SqliteChunkStore(ChunkStore):
    """ChunkStore backed by a single SQLite file (default ``~/.lodestar/index.db``)."""

    backend = "local"

    def __init__(self, db_path: Path | str) -> None:
        self._db = Database(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db.db_path

    def _repo(self) -> Repository:
        repo = getattr(self._local, "repo", None)
        if repo is not None:
            return repo
        try:
            conn = self._db.connect()
            with self._lock:
                if not self._initialized:
                    initialize(conn)
                    self._initialized = True
                self._connections.append(conn)
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailable(f"Cannot open index database {self.db_path}: {exc}") from exc
        repo = Repository(conn)
        self._local.repo = repo
        self._local.conn = conn
        return repo

    # ------------------------------------------------------------------
    # ChunkStore
    # ------------------------------------------------------------------

    def ensure_corpus(self, tag: Tag, embedding_model: str, dimensions: int, metric: str = "cosine") -> Corpus:
        cid = make_corpus_id(tag)
        repo = self._repo()
        try:
            existing = repo.get_corpus(cid)
            if existing is not None:
                check_corpus_matches(existing, embedding_model, dimensions)
                return existing
            repo.add_corpus(
                Corpus(
                    id=cid,
                    directory=tag.directory,
                    branch=tag.branch,
                    embedding_model=embedding_model,
                    dimensions=dimensions,
                    metric=metric,
                )
            )
            return repo.get_corpus(cid)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot register corpus {cid}: {exc}") from exc

    def describe(self, corpus_id: str) -> Corpus | None:
        try:
            return self._repo().get_corpus(corpus_id)
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc

    def list_corpora(self) -> list[str]:
        try:
            return [c.id for c in self._repo().list_corpora()]
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc

    def count(self, corpus_id: str) -> int:
        try:
            return self._repo().count_chunks(corpus_id)
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc

    def fingerprints(self, corpus_id: str) -> dict[str, str]:
        try:
            return self._repo().chunk_fingerprints(corpus_id)
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc

    def apply(self, corpus_id: str, upserts: list[Chunk], deletes: list[str]) -> None:
        if not upserts and not deletes:
            return
        repo = self._repo()
        table = vec_table_name(corpus_id)
        try:
            if upserts and not vec_table_exists(self._local.conn, table):
                raise StorageUnavailable(
                    f"Corpus {corpus_id} is not registered; call ensure_corpus() first"
                )
            with repo.transaction():
                repo.delete_chunks(corpus_id, table, deletes)
                for chunk in upserts:
                    repo.add_chunk(corpus_id, table, chunk)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Write to corpus {corpus_id} failed: {exc}") from exc

    def query(
        self,
        corpus_id: str,
        vector: list[float],
        k: int,
        path_prefix: str | None = None,
    ) -> list[ScoredChunk]:
        repo = self._repo()
        table = vec_table_name(corpus_id)
        try:
            corpus = repo.get_corpus(corpus_id)
            if corpus is None or not vec_table_exists(self._local.conn, table):
                return []
            if path_prefix:
                hits = repo.search_vec_under(
                    corpus_id, table, vector, path_prefix, limit=k, metric=corpus.metric
                )
            else:
                hits = repo.search_vec(table, vector, limit=k)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Query on corpus {corpus_id} failed: {exc}") from exc
        return [ScoredChunk(chunk=c, distance=d, corpus_id=corpus_id) for c, d in hits]

    def close(self) -> None:
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
