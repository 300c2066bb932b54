"""Tests for the path helpers."""

from __future__ import annotations

import os

import pytest

from lodestar.paths import (
    get_basename,
    get_last_n_path_parts,
    get_relative_path,
    get_unique_file_path,
    group_by_last_n_path_parts,
    is_subpath,
    normalize_path,
)


def test_get_basename_handles_both_separators():
    assert get_basename("/a/b/c.py") == "c.py"
    assert get_basename("C:\\src\\app\\main.py") == "main.py"
    assert get_basename("") == ""


def test_get_last_n_path_parts():
    assert get_last_n_path_parts("/home/u/src/app", 2) == "src/app"
    assert get_last_n_path_parts("/home/u/src/app", 0) == ""


def test_group_and_unique_path():
    paths = ["/home/u/work/api/src", "/home/u/play/api/src", "/home/u/tools"]
    groups = group_by_last_n_path_parts(paths, 2)
    assert sorted(groups["api/src"]) == sorted(paths[:2])
    assert get_unique_file_path(paths[0], groups) == "work/api/src"
    assert get_unique_file_path(paths[1], groups) == "play/api/src"
    assert get_unique_file_path(paths[2], groups) == "u/tools"


def test_normalize_strips_trailing_separator(tmp_path):
    assert normalize_path(str(tmp_path) + os.sep) == normalize_path(str(tmp_path))
    assert normalize_path(str(tmp_path / "a" / ".." / "b")) == normalize_path(str(tmp_path / "b"))


@pytest.mark.parametrize(
    "path,parent,expected",
    [
        ("/h/a/b", "/h/a", True),
        ("/h/a", "/h/a", True),
        ("/h/ab", "/h/a", False),
        ("/h", "/h/a", False),
    ],
)
def test_is_subpath_is_component_wise(path, parent, expected):
    assert is_subpath(path, parent) is expected


def test_get_relative_path():
    assert get_relative_path("/ws/proj/src/x.py", ["/other", "/ws/proj"]) == "src/x.py"
    assert get_relative_path("/elsewhere/x.py", ["/ws/proj"]) == "x.py"
