"""Chunk store interface shared by the local and remote backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from lodestar.db.models import Chunk, Corpus, ScoredChunk
from lodestar.exceptions import CorpusModelMismatch
from lodestar.tags import Tag


class ChunkStore(ABC):
    """Persisted (vector, text, location) records, scoped per corpus.

    Implementations must make writes durable before ``upsert`` / ``delete`` /
    ``apply`` return, return ``[]`` when querying a corpus that does not exist,
    and raise ``StorageUnavailable`` for storage-layer I/O failures.
    """

    backend: str = ""

    @abstractmethod
    def ensure_corpus(self, tag: Tag, embedding_model: str, dimensions: int, metric: str = "cosine") -> Corpus:
        """Create the corpus for *tag* on first use and return its registry entry.

        Raises:
            CorpusModelMismatch: If the corpus exists with another model or dimension.
        """

    @abstractmethod
    def describe(self, corpus_id: str) -> Corpus | None:
        """Registry entry for *corpus_id*, or None if it was never created."""

    @abstractmethod
    def list_corpora(self) -> list[str]:
        """Identifiers of every corpus with a committed registry entry."""

    @abstractmethod
    def fingerprints(self, corpus_id: str) -> dict[str, str]:
        """Return {chunk id: filepath} for the chunks stored in *corpus_id*."""

    @abstractmethod
    def apply(self, corpus_id: str, upserts: list[Chunk], deletes: list[str]) -> None:
        """Delete *deletes* and insert *upserts* as one commit."""

    @abstractmethod
    def query(
        self,
        corpus_id: str,
        vector: list[float],
        k: int,
        path_prefix: str | None = None,
    ) -> list[ScoredChunk]:
        """Return up to *k* chunks of *corpus_id* ranked by similarity to *vector*."""

    def upsert(self, corpus_id: str, chunks: list[Chunk]) -> None:
        self.apply(corpus_id, chunks, [])

    def delete(self, corpus_id: str, chunk_ids: list[str]) -> None:
        self.apply(corpus_id, [], chunk_ids)

    def close(self) -> None:
        """Release connections held by this store."""


def check_corpus_matches(corpus: Corpus, embedding_model: str, dimensions: int) -> None:
    if corpus.embedding_model != embedding_model or corpus.dimensions != dimensions:
        raise CorpusModelMismatch(
            f"Corpus {corpus.id} ({corpus.directory}@{corpus.branch}) was indexed with "
            f"'{corpus.embedding_model}' ({corpus.dimensions} dims); the current provider is "
            f"'{embedding_model}' ({dimensions} dims)."
        )
