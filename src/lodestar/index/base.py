"""Base chunker interface for workspace files."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from lodestar.db.models import Chunk


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()``. Boundaries must be deterministic: the
    same file content always yields the same chunks, so an unchanged file
    produces no work on reindex.
    """

    @abstractmethod
    def chunk(self, filepath: str, content: str) -> list[Chunk]:
        """Split *content* of *filepath* into Chunk objects.

        Args:
            filepath: Absolute path of the file; stored on every chunk.
            content: Full decoded text of the file.

        Returns:
            Chunks in file order, without embeddings.
        """

    @staticmethod
    def read_text(path: str | Path) -> str | None:
        """Decode *path* as UTF-8 text. Returns None for binary or undecodable files.

        Raises:
            OSError: If the file cannot be read at all.
        """
        raw = Path(path).read_bytes()
        if b"\x00" in raw[:8192]:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
