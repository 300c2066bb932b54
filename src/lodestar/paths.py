"""Path helpers shared by tag resolution, context formatting and submenus.

All helpers accept both ``/`` and ``\\`` separators so corpus paths recorded on
one platform still render sensibly on another.
"""

from __future__ import annotations

import os
import re

_SEP_RE = re.compile(r"[\\/]")


def split_path(path: str) -> list[str]:
    """Split *path* on either separator, keeping empty parts."""
    return _SEP_RE.split(path)


def get_basename(path: str) -> str:
    """Return the last path component ("" for an empty path)."""
    return split_path(path)[-1] if path else ""


def get_last_n_path_parts(path: str, n: int) -> str:
    """Return the last *n* components of *path* joined with ``/``."""
    if n <= 0 or not path:
        return ""
    return "/".join(split_path(path)[-n:])


def group_by_last_n_path_parts(paths: list[str], n: int) -> dict[str, list[str]]:
    """Group *paths* by their last *n* components."""
    groups: dict[str, list[str]] = {}
    for p in paths:
        groups.setdefault(get_last_n_path_parts(p, n), []).append(p)
    return groups


def get_unique_file_path(path: str, groups: dict[str, list[str]]) -> str:
    """Return the shortest suffix of *path* that is unique within its group.

    Starts from two components (the grouping key) and adds parent components
    while another path in the same group shares the suffix.
    """
    parts = split_path(path)
    key = get_last_n_path_parts(path, 2)
    others = [split_path(p) for p in groups.get(key, []) if p != path]
    n = 2
    while n < len(parts):
        if not any(o[-n:] == parts[-n:] for o in others):
            break
        n += 1
    return "/".join(parts[-n:])


def normalize_path(path: str) -> str:
    """Absolute, normalised, case-normalised path without trailing separators."""
    norm = os.path.normcase(os.path.normpath(os.path.abspath(os.path.expanduser(path))))
    if len(norm) > 1:
        norm = norm.rstrip("\\/") or norm
    return norm


def is_subpath(path: str, parent: str) -> bool:
    """True if *path* equals *parent* or lies underneath it (component-wise)."""
    p = normalize_path(path)
    root = normalize_path(parent)
    if p == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return p.startswith(prefix)


def get_relative_path(filepath: str, workspace_dirs: list[str]) -> str:
    """Path of *filepath* relative to the first workspace dir containing it.

    Falls back to the basename when no workspace directory contains the file.
    Separators in the result are always ``/``.
    """
    file_parts = [p for p in split_path(filepath) if p]
    for ws in workspace_dirs:
        ws_parts = [p for p in split_path(ws) if p]
        if ws_parts and file_parts[: len(ws_parts)] == ws_parts:
            return "/".join(file_parts[len(ws_parts):])
    return get_basename(filepath)
