"""Incremental indexer: scan → chunk → diff → embed in batches → one commit.

Reindexing an unchanged workspace is a no-op: chunk ids pin the line range
and the content hash, so every scanned chunk is already stored and nothing is
queued for embedding or deletion.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

from lodestar.db.models import Chunk
from lodestar.exceptions import (
    EmbeddingBatchFailed,
    IndexCancelled,
    UnsupportedProviderOnHost,
)
from lodestar.index.base import BaseChunker
from lodestar.index.embeddings import EmbeddingsProvider
from lodestar.index.lines import LineChunker
from lodestar.index.walker import DirectoryWalker, FileWalker
from lodestar.logging import logger
from lodestar.session import Session
from lodestar.store.base import ChunkStore
from lodestar.tags import Tag

ProgressCallback = Callable[[int, int], None]


@dataclass
class IndexDelta:
    """What one reindex changed in a corpus."""

    corpus_id: str
    inserted: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.inserted and not self.deleted


class CorpusLocks:
    """One lock per corpus id; different corpora never contend."""

    def __init__(self) -> None:
        self._registry = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, corpus_id: str) -> threading.Lock:
        with self._registry:
            return self._locks.setdefault(corpus_id, threading.Lock())

    @contextmanager
    def hold(self, corpus_id: str) -> Iterator[None]:
        lock = self.get(corpus_id)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()


_DEFAULT_LOCKS = CorpusLocks()


class Indexer:
    """Keep one corpus per tag in sync with its workspace directory.

    Args:
        store: Chunk store receiving the writes.
        embeddings: Provider used for every chunk of the corpus.
        session: Process context; supplies host type and capability table.
        chunker: Defaults to ``LineChunker()``.
        walker: Defaults to ``DirectoryWalker()``.
        batch_size: Chunks per embedding request.
        max_depth: Directory depth scanned under the tag directory.
        locks: Per-corpus locks; shared process-wide by default.
    """

    def __init__(
        self,
        store: ChunkStore,
        embeddings: EmbeddingsProvider,
        session: Session,
        chunker: BaseChunker | None = None,
        walker: FileWalker | None = None,
        batch_size: int = 64,
        max_depth: int = 64,
        locks: CorpusLocks | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.embeddings = embeddings
        self.session = session
        self.chunker = chunker or LineChunker()
        self.walker = walker or DirectoryWalker()
        self.batch_size = batch_size
        self.max_depth = max_depth
        self.locks = locks or _DEFAULT_LOCKS

    def reindex(
        self,
        tag: Tag,
        cancel: threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IndexDelta:
        """Bring the corpus of *tag* up to date with the files under ``tag.directory``.

        Raises:
            UnsupportedProviderOnHost: Before any work, if the embeddings provider
                cannot run on this session's host.
            IndexCancelled: If *cancel* is set before the commit. Nothing is written.
            StorageUnavailable: On chunk store I/O failure.
        """
        provider_id = self.embeddings.provider_id
        if not self.session.supports(provider_id):
            raise UnsupportedProviderOnHost(provider_id, self.session.host_type)

        corpus = self.store.ensure_corpus(
            tag,
            self.embeddings.model,
            self.embeddings.dimensions,
            self.embeddings.metric,
        )
        with self.locks.hold(corpus.id):
            delta = self._reindex_locked(tag, corpus.id, cancel, on_progress)

        self.session.record(
            "reindex",
            corpus_id=corpus.id,
            backend=self.store.backend,
            inserted=len(delta.inserted),
            deleted=len(delta.deleted),
            failed=len(delta.failed),
        )
        return delta

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reindex_locked(
        self,
        tag: Tag,
        corpus_id: str,
        cancel: threading.Event | None,
        on_progress: ProgressCallback | None,
    ) -> IndexDelta:
        delta = IndexDelta(corpus_id=corpus_id)
        stored = self.store.fingerprints(corpus_id)

        scanned, unreadable = self._scan(tag.directory, delta)
        # Files we could not read keep whatever they had.
        keep = {cid for cid, path in stored.items() if path in unreadable}

        to_embed = [c for c in scanned if c.id not in stored]
        scanned_ids = {c.id for c in scanned}
        to_delete = [cid for cid in stored if cid not in scanned_ids and cid not in keep]

        embedded = self._embed_batches(to_embed, delta, cancel, on_progress)

        _check_cancel(cancel)
        self.store.apply(corpus_id, embedded, to_delete)
        delta.inserted = [c.id for c in embedded]
        delta.deleted = to_delete

        if delta.failed:
            logger.warning(
                "Indexed %s with %d chunk(s) left unembedded", tag.directory, len(delta.failed)
            )
        return delta

    def _scan(self, directory: str, delta: IndexDelta) -> tuple[list[Chunk], set[str]]:
        """Chunk every file under *directory*; one bad file never stops the scan."""
        chunks: list[Chunk] = []
        seen: set[str] = set()
        unreadable: set[str] = set()
        for entry in self.walker.walk(directory, self.max_depth):
            if entry.is_directory:
                continue
            try:
                text = self.chunker.read_text(entry.path)
            except OSError as exc:
                logger.warning("Skipping %s: %s", entry.path, exc)
                unreadable.add(entry.path)
                delta.skipped_files.append(entry.path)
                continue
            if text is None:
                delta.skipped_files.append(entry.path)
                continue
            for chunk in self.chunker.chunk(entry.path, text):
                if chunk.id in seen:
                    continue
                seen.add(chunk.id)
                chunks.append(chunk)
        return chunks, unreadable

    def _embed_batches(
        self,
        chunks: list[Chunk],
        delta: IndexDelta,
        cancel: threading.Event | None,
        on_progress: ProgressCallback | None,
    ) -> list[Chunk]:
        embedded: list[Chunk] = []
        total = len(chunks)
        done = 0
        if on_progress:
            on_progress(0, total)
        for start in range(0, total, self.batch_size):
            _check_cancel(cancel)
            batch = chunks[start : start + self.batch_size]
            try:
                vectors = self._embed_one_batch(batch)
            except EmbeddingBatchFailed as exc:
                logger.warning("%s", exc)
                delta.failed.extend(exc.chunk_ids)
            else:
                for chunk, vector in zip(batch, vectors):
                    chunk.embedding = vector
                embedded.extend(batch)
            done += len(batch)
            if on_progress:
                on_progress(done, total)
        return embedded

    def _embed_one_batch(self, batch: list[Chunk]) -> list[list[float]]:
        ids = [c.id for c in batch]
        try:
            vectors = self.embeddings.embed([c.content for c in batch])
        except Exception as exc:
            raise EmbeddingBatchFailed(ids, str(exc)) from exc
        if len(vectors) != len(batch):
            raise EmbeddingBatchFailed(
                ids, f"provider returned {len(vectors)} vectors for {len(batch)} inputs"
            )
        for vector in vectors:
            if len(vector) != self.embeddings.dimensions:
                raise EmbeddingBatchFailed(
                    ids,
                    f"expected {self.embeddings.dimensions} dimensions, got {len(vector)}",
                )
        return vectors


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise IndexCancelled("Reindex cancelled before commit; no changes were written")
