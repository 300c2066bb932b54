"""Tests for the retrieval pipelines."""

from __future__ import annotations

import threading

import pytest

from lodestar.db.models import ScoredChunk
from lodestar.exceptions import (
    NoCorpusAvailable,
    QueryEmbeddingFailed,
    RetrievalCancelled,
    UnsupportedProviderOnHost,
)
from lodestar.index.embeddings import CapabilityTable
from lodestar.index.indexer import Indexer
from lodestar.rag.reranker import Reranker
from lodestar.rag.retriever import (
    NoRerankerPipeline,
    RerankerPipeline,
    RetrievalRequest,
    build_pipeline,
    default_n_final,
)
from lodestar.session import Session
from lodestar.tags import Tag

LOGIN = "def login(user): return check(user)"


class ReversingReranker(Reranker):
    name = "reverse"

    def rerank(self, query, candidates, n_final):
        out = list(reversed(candidates))[:n_final]
        for i, sc in enumerate(out):
            sc.extra["rerank_score"] = len(out) - i
        return out


class BrokenReranker(Reranker):
    name = "broken"

    def rerank(self, query, candidates, n_final):
        raise RuntimeError("judge offline")


@pytest.fixture
def repo(tmp_path, store, embeddings, session):
    root = tmp_path / "repo"
    (root / "sub").mkdir(parents=True)
    (root / "auth.py").write_text(LOGIN + "\n")
    (root / "db.py").write_text("def connect(): pass\n")
    (root / "sub" / "util.py").write_text("def helper(): return 1\n")
    Indexer(store, embeddings, session).reindex(Tag(str(root)))
    return root


def _request(repo, **kwargs) -> RetrievalRequest:
    params = {"input_text": LOGIN, "n_retrieve": 10, "n_final": 3, "tags": [Tag(str(repo))]}
    params.update(kwargs)
    return RetrievalRequest(**params)


def test_default_n_final():
    assert default_n_final(8_192) == 8
    assert default_n_final(100) == 1
    assert default_n_final(10_000_000) == 50


def test_request_rejects_n_final_above_n_retrieve():
    with pytest.raises(ValueError, match="n_final"):
        RetrievalRequest(input_text="q", n_retrieve=2, n_final=5)


def test_no_reranker_nearest_first(repo, store, embeddings, session):
    pipeline = NoRerankerPipeline(store, embeddings, session)
    hits = pipeline.run(_request(repo))
    assert hits[0].chunk.filepath == str(repo / "auth.py")
    assert hits[0].distance == pytest.approx(0.0, abs=1e-5)
    assert len(hits) == 3


def test_retrieve_formats_with_preamble(repo, store, embeddings, session):
    items = NoRerankerPipeline(store, embeddings, session).retrieve(_request(repo, n_final=2))
    assert items[0].name == "Instructions"
    assert len(items) == 3
    assert any(i.name == "auth.py (1-1)" for i in items)


def test_n_final_truncates(repo, store, embeddings, session):
    hits = NoRerankerPipeline(store, embeddings, session).run(_request(repo, n_retrieve=3, n_final=1))
    assert len(hits) == 1


def test_unindexed_tag_raises_no_corpus(tmp_path, store, embeddings, session):
    request = RetrievalRequest(input_text="q", n_retrieve=5, n_final=2, tags=[Tag(str(tmp_path / "cold"))])
    with pytest.raises(NoCorpusAvailable):
        NoRerankerPipeline(store, embeddings, session).run(request)
    assert embeddings.calls == []


def test_no_tags_raises_no_corpus(store, embeddings, session):
    request = RetrievalRequest(input_text="q", n_retrieve=5, n_final=2)
    with pytest.raises(NoCorpusAvailable):
        NoRerankerPipeline(store, embeddings, session).run(request)


def test_filter_inside_tag_restricts_paths(repo, store, embeddings, session):
    request = _request(repo, filter_directory=str(repo / "sub"))
    hits = NoRerankerPipeline(store, embeddings, session).run(request)
    assert [h.chunk.filepath for h in hits] == [str(repo / "sub" / "util.py")]


def test_filter_above_tag_queries_whole_corpus(repo, store, embeddings, session):
    request = _request(repo, filter_directory=str(repo.parent))
    hits = NoRerankerPipeline(store, embeddings, session).run(request)
    assert len(hits) == 3


def test_filter_elsewhere_raises_no_corpus(repo, tmp_path, store, embeddings, session):
    request = _request(repo, filter_directory=str(tmp_path / "other"))
    with pytest.raises(NoCorpusAvailable):
        NoRerankerPipeline(store, embeddings, session).run(request)


def test_duplicate_tags_queried_once(repo, store, embeddings, session):
    request = _request(repo, tags=[Tag(str(repo)), Tag(str(repo))])
    pipeline = NoRerankerPipeline(store, embeddings, session)
    assert len(pipeline.targets(request)) == 1
    hits = pipeline.run(request)
    assert len({h.chunk.location for h in hits}) == len(hits)


def test_multiple_corpora_merged_in_tag_order(repo, tmp_path, store, embeddings, session):
    other = tmp_path / "other"
    other.mkdir()
    (other / "x.py").write_text(LOGIN + "\n")
    Indexer(store, embeddings, session).reindex(Tag(str(other)))
    request = _request(repo, tags=[Tag(str(other)), Tag(str(repo))], n_retrieve=5, n_final=5)
    hits = NoRerankerPipeline(store, embeddings, session).run(request)
    assert hits[0].chunk.filepath == str(other / "x.py")
    assert {h.corpus_id for h in hits} == {Tag(str(other)).corpus_id, Tag(str(repo)).corpus_id}


def test_empty_corpus_returns_preamble_only(tmp_path, store, embeddings, session):
    empty = tmp_path / "empty"
    empty.mkdir()
    Indexer(store, embeddings, session).reindex(Tag(str(empty)))
    request = RetrievalRequest(input_text="q", n_retrieve=5, n_final=2, tags=[Tag(str(empty))])
    items = NoRerankerPipeline(store, embeddings, session).retrieve(request)
    assert [i.name for i in items] == ["Instructions"]


def test_reranker_pipeline_uses_reranker_order(repo, store, embeddings, session):
    pipeline = RerankerPipeline(store, embeddings, ReversingReranker(), session)
    similarity = NoRerankerPipeline(store, embeddings, session).run(_request(repo))
    reranked = pipeline.run(_request(repo))
    assert [h.chunk.id for h in reranked] == [h.chunk.id for h in reversed(similarity)]


def test_reranker_failure_keeps_similarity_order(repo, store, embeddings, session):
    pipeline = RerankerPipeline(store, embeddings, BrokenReranker(), session)
    hits = pipeline.run(_request(repo, n_final=2))
    assert len(hits) == 2
    assert hits[0].chunk.filepath == str(repo / "auth.py")


def test_build_pipeline_selects_strategy(repo, store, embeddings, session):
    assert isinstance(build_pipeline(_request(repo), store, embeddings), NoRerankerPipeline)
    request = _request(repo, use_reranker=True)
    assert isinstance(build_pipeline(request, store, embeddings, ReversingReranker()), RerankerPipeline)
    with pytest.raises(ValueError):
        build_pipeline(request, store, embeddings)


def test_unsupported_host_rejected(repo, store, embeddings):
    session = Session(host_type="jetbrains", capabilities=CapabilityTable([("fake", "jetbrains")]))
    with pytest.raises(UnsupportedProviderOnHost):
        NoRerankerPipeline(store, embeddings, session).run(_request(repo))


def test_cancelled_query(repo, store, embeddings, session):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RetrievalCancelled):
        NoRerankerPipeline(store, embeddings, session).run(_request(repo), cancel)


def test_query_embedding_failure_wrapped(repo, store, embeddings, session):
    embeddings.fail_on = "login"
    with pytest.raises(QueryEmbeddingFailed, match="provider exploded"):
        NoRerankerPipeline(store, embeddings, session).run(_request(repo))


def test_retrieve_records_session_event(repo, store, embeddings, session):
    NoRerankerPipeline(store, embeddings, session).retrieve(_request(repo))
    event = session.events[-1]
    assert event.name == "retrieve"
    assert event.props["pipeline"] == "no-reranker"
    assert event.props["results"] == 3


def test_scored_chunk_extra_isolated():
    a = ScoredChunk(chunk=None, distance=0.1)  # type: ignore[arg-type]
    b = ScoredChunk(chunk=None, distance=0.2)  # type: ignore[arg-type]
    a.extra["x"] = 1
    assert b.extra == {}
