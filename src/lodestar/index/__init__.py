"""Lodestar indexing: file walker and chunkers.

The indexer itself lives in ``lodestar.index.indexer`` and is imported from
there directly.
"""

from lodestar.index.base import BaseChunker
from lodestar.index.lines import LineChunker
from lodestar.index.walker import DEFAULT_EXCLUDES, DirectoryWalker, FileWalker, WalkEntry

__all__ = [
    "BaseChunker",
    "DEFAULT_EXCLUDES",
    "DirectoryWalker",
    "FileWalker",
    "LineChunker",
    "WalkEntry",
]
