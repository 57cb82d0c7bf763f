"""Shared fixtures: a small directory tree to complete paths against."""

from __future__ import annotations

import pytest

DIRECTORIES = [".dire1", "dire1/dire11", "dire1/dire12", "dire2"]
FILES = ["file1.md", "file2.md", "dire1/file11.md", "dire1/file12.md"]


@pytest.fixture
def path_tree(tmp_path, monkeypatch):
    """cwd set to a tree of .dire1/, dire1/{dire11,dire12,file11.md,file12.md}, dire2/, file1.md, file2.md."""
    for name in DIRECTORIES:
        (tmp_path / name).mkdir(parents=True)
    for name in FILES:
        (tmp_path / name).write_text("")
    monkeypatch.chdir(tmp_path)
    return tmp_path
