"""Tests for the LanceDB chunk store, run against a local Lance directory."""

from __future__ import annotations

import pytest

from lodestar.db.models import Chunk
from lodestar.exceptions import CorpusModelMismatch
from lodestar.store.remote import CORPORA_TABLE, LanceChunkStore, connect
from lodestar.tags import Tag

from conftest import fake_vector


def _chunk(path: str, content: str) -> Chunk:
    c = Chunk(filepath=path, start_line=1, end_line=1, content=content)
    c.embedding = fake_vector(content)
    return c


@pytest.fixture
def lance_store(tmp_path):
    connect.cache_clear()
    return LanceChunkStore(str(tmp_path / "lance"))


def test_connect_is_cached(tmp_path):
    connect.cache_clear()
    uri = str(tmp_path / "lance")
    assert connect(uri) is connect(uri)


def test_empty_store(lance_store):
    assert lance_store.list_corpora() == []
    assert lance_store.query("c0000000000000000_00000000", [0.1] * 8, 5) == []
    assert lance_store.fingerprints("c0000000000000000_00000000") == {}


def test_ensure_corpus_and_describe(lance_store):
    corpus = lance_store.ensure_corpus(Tag("/srv/app", "main"), "fake/hash-8", 8)
    described = lance_store.describe(corpus.id)
    assert described.directory == "/srv/app"
    assert described.branch == "main"
    # No chunk table yet: registered but not listed as a corpus table
    assert lance_store.list_corpora() == []


def test_ensure_corpus_mismatch(lance_store):
    lance_store.ensure_corpus(Tag("/srv/app"), "fake/hash-8", 8)
    with pytest.raises(CorpusModelMismatch):
        lance_store.ensure_corpus(Tag("/srv/app"), "other/model", 16)


def test_upsert_query_round_trip(lance_store):
    corpus = lance_store.ensure_corpus(Tag("/srv/app"), "fake/hash-8", 8)
    chunks = [_chunk(f"/srv/app/f{i}.py", f"item_{i} = {i}") for i in range(5)]
    lance_store.upsert(corpus.id, chunks)

    assert lance_store.list_corpora() == [corpus.id]
    hits = lance_store.query(corpus.id, chunks[2].embedding, 1)
    assert [h.chunk.id for h in hits] == [chunks[2].id]
    assert hits[0].distance == pytest.approx(0.0, abs=1e-4)


def test_apply_delete_then_insert(lance_store):
    corpus = lance_store.ensure_corpus(Tag("/srv/app"), "fake/hash-8", 8)
    a, b = _chunk("/srv/app/a.py", "a = 1"), _chunk("/srv/app/b.py", "b = 1")
    lance_store.upsert(corpus.id, [a])
    lance_store.apply(corpus.id, [b], [a.id])
    assert lance_store.fingerprints(corpus.id) == {b.id: "/srv/app/b.py"}


def test_query_with_path_prefix(lance_store):
    corpus = lance_store.ensure_corpus(Tag("/srv/app"), "fake/hash-8", 8)
    inside = _chunk("/srv/app/pkg/a.py", "inside = 1")
    sibling = _chunk("/srv/app/pkg2/a.py", "sibling = 1")
    lance_store.upsert(corpus.id, [inside, sibling])
    hits = lance_store.query(corpus.id, sibling.embedding, 5, path_prefix="/srv/app/pkg")
    assert [h.chunk.filepath for h in hits] == ["/srv/app/pkg/a.py"]


def test_ensure_corpus_when_registry_created_concurrently(lance_store, monkeypatch):
    first = lance_store.ensure_corpus(Tag("/srv/app", "main"), "fake/hash-8", 8)
    # Listing taken before the other writer created the registry table
    monkeypatch.setattr(lance_store, "_table_names", lambda: set())
    second = lance_store.ensure_corpus(Tag("/srv/api", "main"), "fake/hash-8", 8)
    monkeypatch.undo()
    assert lance_store.describe(first.id).directory == "/srv/app"
    assert lance_store.describe(second.id).directory == "/srv/api"


def test_metadata_table_is_not_a_corpus(lance_store):
    corpus = lance_store.ensure_corpus(Tag("/srv/app"), "fake/hash-8", 8)
    lance_store.upsert(corpus.id, [_chunk("/srv/app/a.py", "a = 1")])
    assert CORPORA_TABLE not in lance_store.list_corpora()
