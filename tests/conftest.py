"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib

import pytest

from lodestar.db.connection import Database
from lodestar.db.schema import initialize
from lodestar.index.embeddings import EmbeddingsProvider
from lodestar.session import Session
from lodestar.store.local import SqliteChunkStore

DIMS = 8


def fake_vector(text: str) -> list[float]:
    """Deterministic, never-zero vector for *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 + 0.01 for b in digest[:DIMS]]


class FakeEmbeddings(EmbeddingsProvider):
    """Hash-based embeddings; optionally fails any batch containing *fail_on*."""

    provider_id = "fake"
    model = "fake/hash-8"
    dimensions = DIMS

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise RuntimeError("provider exploded")
        return [fake_vector(t) for t in texts]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "index.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_path):
    """Local chunk store on a fresh database."""
    s = SqliteChunkStore(tmp_path / "store" / "index.db")
    yield s
    s.close()


@pytest.fixture
def embeddings():
    return FakeEmbeddings()


@pytest.fixture
def session():
    with Session(host_type="cli") as s:
        yield s


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolated CLI run: no global config, fake embeddings, index db in tmp_path.

    Returns the database path to pass as ``--db``.
    """
    for var in (
        "LODESTAR_EMBEDDING_MODEL",
        "LODESTAR_HOST_TYPE",
        "LODESTAR_DB_PATH",
        "LODESTAR_REMOTE_URI",
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SECRET_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr("lodestar.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setattr("lodestar.cli.runtime.LiteLLMEmbeddings", lambda *a, **kw: FakeEmbeddings())
    monkeypatch.setattr("lodestar.cli.query.get_context_window", lambda model: 8_192)
    return tmp_path / "cli" / "index.db"
