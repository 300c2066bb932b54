"""Tag registry: (directory, branch) tags, corpus identifiers, tag resolution.

A corpus identifier is a pure function of its tag::

    c<sha256(canonical directory)[:16]>_<sha256(branch)[:8]>

The ``c<...>`` half is the *directory key*. Resolving which candidate folders
are already indexed is a prefix test of the directory key against the stored
corpus ids, so every branch of an indexed directory matches.
"""

from __future__ import annotations

import hashlib
import re
import subprocess
from dataclasses import dataclass

from lodestar.index.walker import DirectoryWalker, FileWalker
from lodestar.paths import is_subpath, normalize_path

NO_BRANCH = "NONE"

CORPUS_ID_RE = re.compile(r"^c[0-9a-f]{16}_[0-9a-f]{8}$")


@dataclass(frozen=True)
class Tag:
    """Scope of one corpus: a workspace directory on a branch."""

    directory: str
    branch: str = NO_BRANCH

    @classmethod
    def for_workspace(cls, directory: str) -> Tag:
        """Tag for *directory* on its current git branch ("NONE" outside git)."""
        return cls(directory=directory, branch=current_branch(directory))

    @property
    def corpus_id(self) -> str:
        return corpus_id(self)


def directory_key(directory: str) -> str:
    digest = hashlib.sha256(normalize_path(directory).encode("utf-8")).hexdigest()
    return f"c{digest[:16]}"


def corpus_id(tag: Tag) -> str:
    """Stable, fixed-width identifier of *tag*, safe as a table name."""
    branch_digest = hashlib.sha256(tag.branch.encode("utf-8")).hexdigest()
    return f"{directory_key(tag.directory)}_{branch_digest[:8]}"


def is_corpus_id(name: str) -> bool:
    return bool(CORPUS_ID_RE.match(name))


def current_branch(directory: str) -> str:
    """Return the checked-out git branch of *directory*, or "NONE"."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=directory,
            shell=False,
            capture_output=True,
            text=True,
            check=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return NO_BRANCH
    branch = result.stdout.strip()
    if not branch or branch == "HEAD":
        return NO_BRANCH
    return branch


# ------------------------------------------------------------------
# Candidate enumeration + resolution
# ------------------------------------------------------------------


def list_candidate_directories(
    root: str,
    max_depth: int,
    walker: FileWalker | None = None,
) -> list[str]:
    """Directories under *root* (hidden / excluded ones skipped by the walker)."""
    walker = walker or DirectoryWalker()
    return [e.path for e in walker.walk(root, max_depth) if e.is_directory]


def matches_corpus(directory: str, corpus_ids: list[str] | set[str]) -> bool:
    prefix = directory_key(directory) + "_"
    return any(cid.startswith(prefix) for cid in corpus_ids)


def resolve_indexed(candidates: list[str], corpus_ids: list[str] | set[str]) -> list[str]:
    """Return the indexed candidates, keeping only the deepest per lineage.

    Paths are normalised first, so casing (on case-insensitive platforms) and
    trailing separators do not split one directory into two. Among matching
    candidates, any path that is a proper ancestor of another match is dropped.
    Survivors keep their input order.
    """
    seen: set[str] = set()
    matched: list[str] = []
    for candidate in candidates:
        norm = normalize_path(candidate)
        if norm in seen:
            continue
        seen.add(norm)
        if matches_corpus(norm, corpus_ids):
            matched.append(norm)
    return drop_ancestors(matched)


def drop_ancestors(paths: list[str]) -> list[str]:
    """Drop every path that is a proper ancestor of another path in *paths*."""
    return [
        p
        for p in paths
        if not any(other != p and is_subpath(other, p) for other in paths)
    ]
