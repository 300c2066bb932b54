"""Retrieval pipeline: query → tags → per-corpus KNN → merge → (rerank) → context.

Two strategies behind one interface, chosen once by ``build_pipeline``:

  - ``NoRerankerPipeline``: merged similarity candidates truncated to n_final.
  - ``RerankerPipeline``:   merged candidates reordered by a Reranker, then
                            truncated. A reranker failure keeps similarity order.

Candidates from different corpora are concatenated in tag order; their
distances are not normalised against each other.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from lodestar.db.models import ScoredChunk
from lodestar.exceptions import (
    NoCorpusAvailable,
    QueryEmbeddingFailed,
    RetrievalCancelled,
    UnsupportedProviderOnHost,
)
from lodestar.index.embeddings import EmbeddingsProvider
from lodestar.logging import logger
from lodestar.paths import is_subpath, normalize_path
from lodestar.rag.context import ContextResult, format_results
from lodestar.rag.reranker import Reranker
from lodestar.session import Session
from lodestar.store.base import ChunkStore
from lodestar.tags import Tag

TOKENS_PER_SNIPPET = 512
MAX_FINAL = 50


def default_n_final(context_length: int) -> int:
    """Fill half the model context with snippets, capped at 50."""
    return max(1, min(MAX_FINAL, context_length // TOKENS_PER_SNIPPET // 2))


@dataclass
class RetrievalRequest:
    """One retrieval query.

    Attributes:
        input_text: Natural-language or code query.
        n_retrieve: Candidates fetched from each corpus.
        n_final: Results returned (<= n_retrieve).
        tags: Corpora to search, one per (directory, branch).
        filter_directory: Restrict results to files under this directory.
        use_reranker: Apply the reranking stage.
    """

    input_text: str
    n_retrieve: int
    n_final: int
    tags: list[Tag] = field(default_factory=list)
    filter_directory: str | None = None
    use_reranker: bool = False

    def __post_init__(self) -> None:
        if self.n_retrieve < 1 or self.n_final < 1:
            raise ValueError("n_retrieve and n_final must be >= 1")
        if self.n_final > self.n_retrieve:
            raise ValueError(
                f"n_final ({self.n_final}) must not exceed n_retrieve ({self.n_retrieve})"
            )


@dataclass(frozen=True)
class CorpusTarget:
    """A corpus to query and the optional path prefix restricting it."""

    tag: Tag
    corpus_id: str
    path_prefix: str | None = None


class RetrievalPipeline(ABC):
    """Shared steps of every retrieval strategy.

    Args:
        store: Chunk store holding the corpora.
        embeddings: Must be the provider the corpora were indexed with.
        session: Process context; gates the provider on the host type.
    """

    name: str = ""

    def __init__(
        self,
        store: ChunkStore,
        embeddings: EmbeddingsProvider,
        session: Session | None = None,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.session = session

    def retrieve(
        self,
        request: RetrievalRequest,
        cancel: threading.Event | None = None,
    ) -> list[ContextResult]:
        """Run the pipeline and return context items (preamble first).

        Raises:
            NoCorpusAvailable: If no tag resolves to an existing corpus.
            UnsupportedProviderOnHost: If the embeddings provider cannot run here.
            RetrievalCancelled: If *cancel* is set before the query finishes.
            QueryEmbeddingFailed: If the embeddings provider fails on the query.
            StorageUnavailable: On chunk store I/O failure.
        """
        hits = self.run(request, cancel)
        if not hits:
            logger.warning("No results found for query %r", request.input_text[:80])
        if self.session is not None:
            self.session.record(
                "retrieve",
                pipeline=self.name,
                backend=self.store.backend,
                tags=len(request.tags),
                results=len(hits),
            )
        return format_results([h.chunk for h in hits], [t.directory for t in request.tags])

    def run(
        self,
        request: RetrievalRequest,
        cancel: threading.Event | None = None,
    ) -> list[ScoredChunk]:
        """Return the final ranked hits, before formatting."""
        self._check_host()
        targets = self.targets(request)
        if not targets:
            raise NoCorpusAvailable(_no_corpus_message(request))
        _check_cancel(cancel)
        try:
            vector = self.embeddings.embed_one(request.input_text)
        except Exception as exc:
            raise QueryEmbeddingFailed(f"Could not embed the query: {exc}") from exc
        candidates = self._gather(targets, vector, request.n_retrieve, cancel)
        _check_cancel(cancel)
        return self.select(request, candidates)

    @abstractmethod
    def select(self, request: RetrievalRequest, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        """Reduce merged candidates to at most ``request.n_final`` hits."""

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def targets(self, request: RetrievalRequest) -> list[CorpusTarget]:
        """Corpora eligible for *request*, in tag order.

        With a filter directory, a tag at or under the filter is queried whole;
        a tag containing the filter is queried with the filter as path prefix;
        any other tag is skipped.
        """
        existing = set(self.store.list_corpora())
        flt = normalize_path(request.filter_directory) if request.filter_directory else None
        targets: list[CorpusTarget] = []
        seen: set[str] = set()
        for tag in request.tags:
            cid = tag.corpus_id
            if cid not in existing or cid in seen:
                continue
            prefix = None
            if flt is not None:
                if is_subpath(tag.directory, flt):
                    prefix = None
                elif is_subpath(flt, tag.directory):
                    prefix = flt
                else:
                    continue
            seen.add(cid)
            targets.append(CorpusTarget(tag=tag, corpus_id=cid, path_prefix=prefix))
        return targets

    def _gather(
        self,
        targets: list[CorpusTarget],
        vector: list[float],
        k: int,
        cancel: threading.Event | None,
    ) -> list[ScoredChunk]:
        merged: list[ScoredChunk] = []
        seen: set[tuple[str, int, int]] = set()
        for target in targets:
            _check_cancel(cancel)
            hits = self.store.query(target.corpus_id, vector, k, path_prefix=target.path_prefix)
            if not hits:
                logger.warning("Corpus %s (%s) returned no results", target.corpus_id, target.tag.directory)
            for hit in hits:
                if hit.chunk.location in seen:
                    continue
                seen.add(hit.chunk.location)
                merged.append(hit)
        return merged

    def _check_host(self) -> None:
        if self.session is None:
            return
        provider_id = self.embeddings.provider_id
        if not self.session.supports(provider_id):
            raise UnsupportedProviderOnHost(provider_id, self.session.host_type)


class NoRerankerPipeline(RetrievalPipeline):
    name = "no-reranker"

    def select(self, request: RetrievalRequest, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        return candidates[: request.n_final]


class RerankerPipeline(RetrievalPipeline):
    name = "reranker"

    def __init__(
        self,
        store: ChunkStore,
        embeddings: EmbeddingsProvider,
        reranker: Reranker,
        session: Session | None = None,
    ) -> None:
        super().__init__(store, embeddings, session)
        self.reranker = reranker

    def select(self, request: RetrievalRequest, candidates: list[ScoredChunk]) -> list[ScoredChunk]:
        if not candidates:
            return []
        try:
            return self.reranker.rerank(request.input_text, candidates, request.n_final)[: request.n_final]
        except Exception as exc:
            logger.warning("Reranker '%s' failed, keeping similarity order: %s", self.reranker.name, exc)
            return candidates[: request.n_final]


def build_pipeline(
    request: RetrievalRequest,
    store: ChunkStore,
    embeddings: EmbeddingsProvider,
    reranker: Reranker | None = None,
    session: Session | None = None,
) -> RetrievalPipeline:
    """Pick the strategy for *request* once, up front."""
    if request.use_reranker:
        if reranker is None:
            raise ValueError("use_reranker is set but no reranker was supplied")
        return RerankerPipeline(store, embeddings, reranker, session)
    return NoRerankerPipeline(store, embeddings, session)


def _no_corpus_message(request: RetrievalRequest) -> str:
    if not request.tags:
        return "No workspace directories to search"
    dirs = ", ".join(t.directory for t in request.tags)
    if request.filter_directory:
        return f"No indexed corpus covers {request.filter_directory} (searched: {dirs})"
    return f"None of these directories has been indexed: {dirs}"


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise RetrievalCancelled("Query cancelled")
