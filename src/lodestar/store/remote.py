"""Remote chunk store: LanceDB tables on S3-compatible object storage.

One Lance table per corpus (named by corpus id) plus a ``lodestar_corpora``
metadata table. Connections are cached for the process lifetime, keyed by
(uri, region, access key).
"""

from __future__ import annotations

import functools
from datetime import datetime, timezone
from typing import Any

import lancedb

from lodestar.db.models import Chunk, Corpus, ScoredChunk
from lodestar.exceptions import StorageUnavailable
from lodestar.logging import logger
from lodestar.store.base import ChunkStore, check_corpus_matches
from lodestar.tags import Tag, corpus_id as make_corpus_id, is_corpus_id

CORPORA_TABLE = "lodestar_corpora"


@functools.lru_cache(maxsize=None)
def connect(uri: str, region: str = "", access_key: str = "", secret_key: str = "") -> Any:
    """Open (once per process) a LanceDB connection to *uri*."""
    storage_options: dict[str, str] = {}
    if access_key:
        storage_options["aws_access_key_id"] = access_key
    if secret_key:
        storage_options["aws_secret_access_key"] = secret_key
    if region:
        storage_options["region"] = region
    logger.info("Connecting to remote index %s", uri)
    return lancedb.connect(uri, storage_options=storage_options or None)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class LanceChunkStore(ChunkStore):
    """ChunkStore backed by LanceDB.

    Lance commits every ``add`` / ``delete`` as its own version, so ``apply``
    is durable on return but not atomic across its delete and insert steps.
    """

    backend = "remote"

    def __init__(self, uri: str, region: str = "", access_key: str = "", secret_key: str = "") -> None:
        self.uri = uri
        self._params = (uri, region, access_key, secret_key)

    @property
    def _db(self) -> Any:
        try:
            return connect(*self._params)
        except Exception as exc:
            raise StorageUnavailable(f"Cannot connect to remote index {self.uri}: {exc}") from exc

    def _table_names(self) -> set[str]:
        try:
            return set(self._db.table_names())
        except StorageUnavailable:
            raise
        except Exception as exc:
            raise StorageUnavailable(f"Cannot list remote tables: {exc}") from exc

    def _add_or_create(self, name: str, rows: list[dict], names: set[str] | None = None) -> None:
        """Append *rows* to table *name*, creating it on first write."""
        if name in (self._table_names() if names is None else names):
            self._db.open_table(name).add(rows)
            return
        try:
            self._db.create_table(name, data=rows)
        except Exception:
            # Another writer created it since the listing.
            if name not in set(self._db.table_names()):
                raise
            self._db.open_table(name).add(rows)

    # ------------------------------------------------------------------
    # Corpora registry
    # ------------------------------------------------------------------

    def _corpus_rows(self) -> list[dict]:
        if CORPORA_TABLE not in self._table_names():
            return []
        try:
            return self._db.open_table(CORPORA_TABLE).to_arrow().to_pylist()
        except Exception as exc:
            raise StorageUnavailable(f"Cannot read remote corpora: {exc}") from exc

    def ensure_corpus(self, tag: Tag, embedding_model: str, dimensions: int, metric: str = "cosine") -> Corpus:
        cid = make_corpus_id(tag)
        existing = self.describe(cid)
        if existing is not None:
            check_corpus_matches(existing, embedding_model, dimensions)
            return existing
        row = {
            "id": cid,
            "directory": tag.directory,
            "branch": tag.branch,
            "embedding_model": embedding_model,
            "dimensions": dimensions,
            "metric": metric,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._add_or_create(CORPORA_TABLE, [row])
        except StorageUnavailable:
            raise
        except Exception as exc:
            raise StorageUnavailable(f"Cannot register remote corpus {cid}: {exc}") from exc
        return Corpus(**row)

    def describe(self, corpus_id: str) -> Corpus | None:
        for row in self._corpus_rows():
            if row["id"] == corpus_id:
                return Corpus(**row)
        return None

    def list_corpora(self) -> list[str]:
        """Corpus tables present remotely (registry or not, as long as the name is a corpus id)."""
        return sorted(name for name in self._table_names() if is_corpus_id(name))

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def fingerprints(self, corpus_id: str) -> dict[str, str]:
        if corpus_id not in self._table_names():
            return {}
        try:
            rows = (
                self._db.open_table(corpus_id).to_arrow().select(["id", "filepath"]).to_pylist()
            )
        except Exception as exc:
            raise StorageUnavailable(f"Cannot read remote corpus {corpus_id}: {exc}") from exc
        return {r["id"]: r["filepath"] for r in rows}

    def apply(self, corpus_id: str, upserts: list[Chunk], deletes: list[str]) -> None:
        if not upserts and not deletes:
            return
        names = self._table_names()
        try:
            if deletes and corpus_id in names:
                table = self._db.open_table(corpus_id)
                for i in range(0, len(deletes), 500):
                    ids = ", ".join(_quote(d) for d in deletes[i : i + 500])
                    table.delete(f"id IN ({ids})")
            if upserts:
                self._add_or_create(corpus_id, [_chunk_to_row(c) for c in upserts], names)
        except StorageUnavailable:
            raise
        except Exception as exc:
            raise StorageUnavailable(f"Write to remote corpus {corpus_id} failed: {exc}") from exc

    def query(
        self,
        corpus_id: str,
        vector: list[float],
        k: int,
        path_prefix: str | None = None,
    ) -> list[ScoredChunk]:
        if corpus_id not in self._table_names():
            return []
        corpus = self.describe(corpus_id)
        metric = corpus.metric if corpus else "cosine"
        base = path_prefix.rstrip("/\\") if path_prefix else None
        try:
            search = self._db.open_table(corpus_id).search(vector).distance_type(metric).limit(k)
            if base is not None:
                # LIKE wildcards in the path only widen the match; rows are re-checked below.
                search = search.where(
                    f"filepath = {_quote(base)} OR filepath LIKE {_quote(base + '/%')}",
                    prefilter=True,
                )
            rows = search.to_list()
        except Exception as exc:
            raise StorageUnavailable(f"Query on remote corpus {corpus_id} failed: {exc}") from exc
        if base is not None:
            rows = [r for r in rows if r["filepath"] == base or r["filepath"].startswith(base + "/")]
        return [
            ScoredChunk(chunk=_row_to_chunk(r), distance=float(r["_distance"]), corpus_id=corpus_id)
            for r in rows
        ]


def _chunk_to_row(chunk: Chunk) -> dict:
    if chunk.embedding is None:
        raise ValueError(f"Chunk {chunk.id} has no embedding")
    return {
        "id": chunk.id,
        "filepath": chunk.filepath,
        "start_line": chunk.start_line,
        "end_line": chunk.end_line,
        "content": chunk.content,
        "content_hash": chunk.content_hash,
        "vector": [float(v) for v in chunk.embedding],
    }


def _row_to_chunk(row: dict) -> Chunk:
    return Chunk(
        id=row["id"],
        filepath=row["filepath"],
        start_line=int(row["start_line"]),
        end_line=int(row["end_line"]),
        content=row["content"],
        content_hash=row["content_hash"],
    )
