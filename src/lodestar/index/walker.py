"""Workspace file walker (ignore-aware directory scan).

Produces ``WalkEntry(path, is_directory)`` entries under a root, already
filtered: hidden entries, excluded names (dependency caches, build output)
and oversized files never reach the indexer.
"""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol

DEFAULT_EXCLUDES: tuple[str, ...] = (
    "node_modules",
    "bower_components",
    "__pycache__",
    "venv",
    "site-packages",
    "dist",
    "build",
    "target",
    "*.min.js",
    "*.lock",
)


@dataclass(frozen=True)
class WalkEntry:
    path: str
    is_directory: bool


class FileWalker(Protocol):
    def walk(self, root: str, max_depth: int) -> Iterator[WalkEntry]: ...


class DirectoryWalker:
    """Sorted, depth-limited directory scan.

    Args:
        exclude: fnmatch patterns matched against entry names.
        include_hidden: Yield dot-files / dot-directories as well.
        max_file_bytes: Files larger than this are not yielded.
    """

    def __init__(
        self,
        exclude: tuple[str, ...] | list[str] = DEFAULT_EXCLUDES,
        include_hidden: bool = False,
        max_file_bytes: int = 1_000_000,
    ) -> None:
        self.exclude = tuple(exclude)
        self.include_hidden = include_hidden
        self.max_file_bytes = max_file_bytes

    def walk(self, root: str, max_depth: int) -> Iterator[WalkEntry]:
        """Yield entries under *root* up to *max_depth* levels (1 = direct children)."""
        yield from self._scan(Path(root), depth=1, max_depth=max_depth)

    def directories(self, root: str, max_depth: int) -> list[str]:
        return [e.path for e in self.walk(root, max_depth) if e.is_directory]

    def files(self, root: str, max_depth: int) -> list[str]:
        return [e.path for e in self.walk(root, max_depth) if not e.is_directory]

    def _scan(self, directory: Path, depth: int, max_depth: int) -> Iterator[WalkEntry]:
        if depth > max_depth:
            return
        try:
            entries = sorted(directory.iterdir())
        except (PermissionError, FileNotFoundError, NotADirectoryError):
            return
        for entry in entries:
            if self._skipped(entry.name):
                continue
            try:
                if entry.is_symlink():
                    continue
                if entry.is_dir():
                    yield WalkEntry(str(entry), True)
                    yield from self._scan(entry, depth + 1, max_depth)
                elif entry.is_file() and entry.stat().st_size <= self.max_file_bytes:
                    yield WalkEntry(str(entry), False)
            except OSError:
                continue

    def _skipped(self, name: str) -> bool:
        if not self.include_hidden and name.startswith("."):
            return True
        return any(fnmatch.fnmatch(name, pat) for pat in self.exclude)


def home_directory() -> str:
    return os.path.expanduser("~")
