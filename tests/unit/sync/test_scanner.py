"""Tests for disk scanning and path filters."""

from __future__ import annotations

import threading

import pytest

from kbsync.errors import FileReadError, OperationCancelled
from kbsync.hashing import content_hash
from kbsync.sync.scanner import PathFilter, is_temp_file, iter_files, scan


@pytest.fixture
def tree(tmp_path):
    files = {
        "README.md": "# Readme\n",
        "guide/install.md": "# Install\n",
        "guide/deep/more.md": "# More\n",
        "drafts/wip.md": "# WIP\n",
        ".obsidian/config.md": "hidden\n",
        "notes.txt": "not markdown\n",
        "guide/install.md.swp": "swap\n",
    }
    for rel, text in files.items():
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return tmp_path


def test_default_filter_matches_markdown_at_any_depth():
    f = PathFilter()
    assert f.matches("a.md")
    assert f.matches("x/y/z.md")
    assert not f.matches("a.txt")


def test_exclude_wins_over_include():
    f = PathFilter.of(["**/*.md"], ["drafts/**", "**/CHANGELOG.md"])
    assert not f.matches("drafts/a.md")
    assert not f.matches("CHANGELOG.md")
    assert not f.matches("sub/CHANGELOG.md")
    assert f.matches("sub/a.md")


@pytest.mark.parametrize("name", ["~lock.md", ".#a.md", "a.md.tmp", "a.md.swp", "a.md~"])
def test_temp_files(name):
    assert is_temp_file(name)


def test_iter_files_skips_hidden_excluded_and_temp(tree):
    rels = list(iter_files(tree, PathFilter.of(["**/*.md"], ["drafts/**"])))
    assert rels == ["README.md", "guide/install.md", "guide/deep/more.md"]


def test_scan_hashes_files(tree):
    found = scan(tree, PathFilter())
    assert found["README.md"].content_hash == content_hash("# Readme\n")
    assert "drafts/wip.md" in found
    assert ".obsidian/config.md" not in found


def test_scan_missing_root_raises(tmp_path):
    with pytest.raises(FileReadError, match="nope"):
        scan(tmp_path / "nope", PathFilter())


def test_scan_root_that_is_a_file_raises(tmp_path):
    target = tmp_path / "README.md"
    target.write_text("# Readme\n", encoding="utf-8")
    with pytest.raises(FileReadError):
        scan(target, PathFilter())


def test_scan_honours_cancel(tree):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelled):
        scan(tree, PathFilter(), cancel)
