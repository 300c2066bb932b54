"""Domain models for the Lodestar storage layer."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field


def content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def make_chunk_id(filepath: str, start_line: int, end_line: int, content_hash: str) -> str:
    """Identity of a chunk: changes whenever its range or content changes."""
    key = f"{filepath}\0{start_line}\0{end_line}\0{content_hash}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


@dataclass
class Corpus:
    id: str
    directory: str
    branch: str
    embedding_model: str
    dimensions: int
    metric: str = "cosine"
    created_at: str | None = None


@dataclass
class Chunk:
    """A contiguous line range of one file (1-based, inclusive) plus its embedding."""

    filepath: str
    start_line: int
    end_line: int
    content: str
    content_hash: str = ""
    embedding: list[float] | None = None
    id: str = ""
    rowid: int | None = None  # set once stored locally; None for unsaved chunks

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = content_digest(self.content)
        if not self.id:
            self.id = make_chunk_id(
                self.filepath, self.start_line, self.end_line, self.content_hash
            )

    @property
    def location(self) -> tuple[str, int, int]:
        return (self.filepath, self.start_line, self.end_line)


@dataclass
class ScoredChunk:
    """A query hit: the chunk, its distance to the query and the corpus it came from.

    Lower distance = more similar (cosine distance or L2, per corpus metric).
    """

    chunk: Chunk
    distance: float
    corpus_id: str = ""
    extra: dict = field(default_factory=dict)
