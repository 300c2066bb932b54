"""Line-window chunker: fixed, non-overlapping ranges of source lines."""

from __future__ import annotations

from lodestar.db.models import Chunk
from lodestar.index.base import BaseChunker


class LineChunker(BaseChunker):
    """Split a file into windows of ``lines_per_chunk`` lines.

    Windows start at line 1 and never overlap, so an edit only changes the
    window(s) it touches. Whitespace-only windows are dropped.
    """

    def __init__(self, lines_per_chunk: int = 64) -> None:
        if lines_per_chunk < 1:
            raise ValueError("lines_per_chunk must be >= 1")
        self.lines_per_chunk = lines_per_chunk

    def chunk(self, filepath: str, content: str) -> list[Chunk]:
        if not content.strip():
            return []
        lines = split_lines(content)
        chunks: list[Chunk] = []
        for start in range(0, len(lines), self.lines_per_chunk):
            window = lines[start : start + self.lines_per_chunk]
            text = "\n".join(window)
            if not text.strip():
                continue
            chunks.append(
                Chunk(
                    filepath=filepath,
                    start_line=start + 1,
                    end_line=start + len(window),
                    content=text,
                )
            )
        return chunks


def split_lines(content: str) -> list[str]:
    """Split on ``\\n`` only, the way editors number lines.

    ``str.splitlines`` also breaks on form feeds and other separators, which
    would shift every later line number.
    """
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]
