"""Context output: formatting query hits as context items for a prompt."""

from __future__ import annotations

from dataclasses import dataclass

from lodestar.db.models import Chunk
from lodestar.paths import get_basename, get_relative_path

INSTRUCTIONS = (
    "Use the above code to answer the following question. You should not reference "
    "any files outside of what is shown, unless they are commonly known files, like a "
    ".gitignore or package.json. Reference the filenames whenever possible. If there "
    "isn't enough information to answer the question, suggest where the user might "
    "look to learn more."
)

NO_CORPUS_INSTRUCTIONS = (
    "No indexed code is available for this request, so no snippets are shown. "
    "Tell the user that the workspace (or the selected folder) has not been indexed "
    "yet and that running `lodestar index` on it will make its code searchable."
)


@dataclass(frozen=True)
class ContextResult:
    name: str
    description: str
    content: str
    uri: str | None = None

    def to_dict(self) -> dict:
        item: dict = {
            "name": self.name,
            "description": self.description,
            "content": self.content,
        }
        if self.uri is not None:
            item["uri"] = {"type": "file", "value": self.uri}
        return item


def instructions_item(content: str = INSTRUCTIONS) -> ContextResult:
    return ContextResult(name="Instructions", description="Instructions", content=content)


def format_chunk(chunk: Chunk, workspace_dirs: list[str]) -> ContextResult:
    name = f"{get_basename(chunk.filepath)} ({chunk.start_line}-{chunk.end_line})"
    return ContextResult(
        name=name,
        description=get_relative_path(chunk.filepath, workspace_dirs),
        content=f"```{name}\n{chunk.content}\n```",
        uri=chunk.filepath,
    )


def format_results(chunks: list[Chunk], workspace_dirs: list[str]) -> list[ContextResult]:
    """Preamble first, then one item per chunk sorted by filepath (stable)."""
    ordered = sorted(chunks, key=lambda c: c.filepath)
    return [instructions_item(), *(format_chunk(c, workspace_dirs) for c in ordered)]
