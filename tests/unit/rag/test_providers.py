"""Tests for the codebase, folder and remote context providers."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from lodestar.index.indexer import Indexer
from lodestar.rag.context import NO_CORPUS_INSTRUCTIONS
from lodestar.rag.providers import (
    ALL_REMOTE,
    CodebaseProvider,
    FolderProvider,
    RemoteCodebaseProvider,
    RetrievalOptions,
)
from lodestar.store.remote import LanceChunkStore, connect
from lodestar.store.selector import BackendSelector, RemoteSettings
from lodestar.tags import Tag

OPTIONS = RetrievalOptions(n_retrieve=5, n_final=2)


@pytest.fixture
def selector(tmp_path):
    sel = BackendSelector(tmp_path / "index.db", RemoteSettings())
    yield sel
    sel.close()


@pytest.fixture
def local(selector):
    return selector.resolve("local")


def _project(root, files: dict[str, str]):
    root.mkdir(parents=True, exist_ok=True)
    for name, text in files.items():
        (root / name).write_text(text)
    return root


def _index(store, embeddings, session, directory, tag: Tag | None = None) -> Tag:
    tag = tag or Tag.for_workspace(str(directory))
    Indexer(store, embeddings, session).reindex(tag)
    return tag


# ------------------------------------------------------------------
# RetrievalOptions
# ------------------------------------------------------------------


def test_options_default_n_final_from_context_length():
    assert RetrievalOptions(context_length=8_192).sizes() == (25, 8)


def test_options_n_retrieve_never_below_n_final():
    assert RetrievalOptions(n_retrieve=3, n_final=10).sizes() == (10, 10)


# ------------------------------------------------------------------
# CodebaseProvider
# ------------------------------------------------------------------


def test_codebase_returns_preamble_and_snippets(tmp_path, local, selector, embeddings, session):
    ws = _project(tmp_path / "ws", {"a.py": "alpha = 1\n", "b.py": "beta = 2\n"})
    _index(local, embeddings, session, ws)
    provider = CodebaseProvider(selector, embeddings, session, OPTIONS)
    items = provider.get_context_items("alpha = 1", [str(ws)])
    assert items[0].name == "Instructions"
    assert len(items) == 3
    assert {i.description for i in items[1:]} == {"a.py", "b.py"}


def test_codebase_cold_workspace_explains(tmp_path, selector, embeddings, session):
    cold = _project(tmp_path / "cold", {"a.py": "x = 1\n"})
    provider = CodebaseProvider(selector, embeddings, session, OPTIONS)
    items = provider.get_context_items("anything", [str(cold)])
    assert len(items) == 1
    assert items[0].content == NO_CORPUS_INSTRUCTIONS
    assert embeddings.calls == []


# ------------------------------------------------------------------
# FolderProvider
# ------------------------------------------------------------------


def test_folder_submenu_keeps_deepest_indexed(tmp_path, local, selector, embeddings, session):
    home = tmp_path / "home"
    a = _project(home / "a", {"top.py": "top = 1\n"})
    ab = _project(home / "a" / "b", {"deep.py": "deep = 1\n"})
    c = _project(home / "c", {"c.py": "c = 1\n"})
    _project(home / "unindexed", {"u.py": "u = 1\n"})
    for d in (a, ab, c):
        _index(local, embeddings, session, d, Tag(str(d)))

    provider = FolderProvider(selector, embeddings, session, OPTIONS, root=str(home))
    items = provider.load_submenu_items()
    ids = [i.id for i in items]
    assert str(ab) in ids
    assert str(c) in ids
    assert str(a) not in ids
    assert all("unindexed" not in i for i in ids)
    deep = next(i for i in items if i.id == str(ab))
    assert deep.title == "b"
    assert deep.description == "a/b"


def test_folder_selection_filters_results(tmp_path, local, selector, embeddings, session):
    home = tmp_path / "home"
    repo = _project(home / "repo", {"root.py": "shared = 1\n"})
    _project(repo / "pkg", {"inner.py": "shared = 1\n"})
    _index(local, embeddings, session, repo, Tag(str(repo)))

    provider = FolderProvider(selector, embeddings, session, OPTIONS, root=str(home))
    items = provider.get_context_items("shared = 1", [], selection=str(repo / "pkg"))
    assert [i.uri for i in items[1:]] == [str(repo / "pkg" / "inner.py")]


def test_folder_selection_only_searches_current_branch(
    tmp_path, local, selector, embeddings, session
):
    ws = _project(tmp_path / "home" / "ws", {"a.py": "OLD BRANCH CODE\nremoved_fn()\n"})
    _index(local, embeddings, session, ws, Tag(str(ws), "old-feature"))
    (ws / "a.py").write_text("CURRENT CODE\n")
    _index(local, embeddings, session, ws, Tag(str(ws), "main"))

    provider = FolderProvider(selector, embeddings, session, OPTIONS, root=str(tmp_path))
    with patch("lodestar.tags.current_branch", return_value="main"):
        items = provider.get_context_items("CURRENT CODE", [], selection=str(ws))
    assert [i.content for i in items[1:]] == ["```a.py (1-1)\nCURRENT CODE\n```"]


def test_folder_selection_skips_directory_not_indexed_on_current_branch(
    tmp_path, local, selector, embeddings, session
):
    ws = _project(tmp_path / "home" / "ws", {"a.py": "stale = 1\n"})
    _index(local, embeddings, session, ws, Tag(str(ws), "old-feature"))

    provider = FolderProvider(selector, embeddings, session, OPTIONS, root=str(tmp_path))
    with patch("lodestar.tags.current_branch", return_value="main"):
        items = provider.get_context_items("stale = 1", [], selection=str(ws))
    assert [i.content for i in items] == [NO_CORPUS_INSTRUCTIONS]


def test_folder_selection_not_indexed_explains(tmp_path, local, selector, embeddings, session):
    provider = FolderProvider(selector, embeddings, session, OPTIONS, root=str(tmp_path))
    items = provider.get_context_items("q", [], selection=str(tmp_path / "nowhere"))
    assert [i.content for i in items] == [NO_CORPUS_INSTRUCTIONS]


# ------------------------------------------------------------------
# RemoteCodebaseProvider
# ------------------------------------------------------------------


def test_remote_unconfigured_is_empty(selector, embeddings, session):
    provider = RemoteCodebaseProvider(selector, embeddings, session, OPTIONS)
    assert provider.load_submenu_items() == []
    assert provider.get_context_items("q", [], selection=ALL_REMOTE) == []


def test_remote_configured(tmp_path, selector, embeddings, session):
    connect.cache_clear()
    remote = LanceChunkStore(str(tmp_path / "lance"))
    selector._stores["remote"] = remote
    app = _project(tmp_path / "srv" / "app", {"main.py": "serve = True\n"})
    tag = _index(remote, embeddings, session, app, Tag(str(app), "main"))

    provider = RemoteCodebaseProvider(selector, embeddings, session, OPTIONS)
    submenu = provider.load_submenu_items()
    assert submenu[0].id == ALL_REMOTE
    assert submenu[1].id == tag.corpus_id
    assert submenu[1].title == "app"
    assert submenu[1].description == f"{app} (main)"

    items = provider.get_context_items("serve = True", [], selection=tag.corpus_id)
    assert [i.uri for i in items[1:]] == [str(app / "main.py")]
    assert provider.get_context_items("serve = True", [], selection=None) == []
    assert len(provider.get_context_items("serve = True", [], selection=ALL_REMOTE)) == 2
