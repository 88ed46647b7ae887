"""Tests for kbsync remove."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from typer.testing import CliRunner

from kbsync.cli.main import app

runner = CliRunner()


def _count(root: Path) -> int:
    conn = sqlite3.connect(root / ".kbsync.db")
    try:
        return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
    finally:
        conn.close()


@pytest.fixture
def indexed(cli_project: Path) -> Path:
    for name in ("a.md", "b.md"):
        (cli_project / "docs" / name).write_text(f"# {name}\n\nbody\n", encoding="utf-8")
    result = runner.invoke(app, ["reconcile", "--root", str(cli_project)])
    assert result.exit_code == 0, result.output
    return cli_project


def test_remove_requires_a_target(cli_project: Path) -> None:
    result = runner.invoke(app, ["remove", "--root", str(cli_project)])
    assert result.exit_code == 1
    assert "Nothing to remove" in result.output


def test_remove_one_path(indexed: Path) -> None:
    result = runner.invoke(app, ["remove", "--root", str(indexed), "--path", "a.md", "--yes"])
    assert result.exit_code == 0, result.output
    assert _count(indexed) == 1
    assert (indexed / "docs" / "a.md").exists()


def test_remove_unknown_path(indexed: Path) -> None:
    result = runner.invoke(app, ["remove", "--root", str(indexed), "-p", "nope.md", "--yes"])
    assert result.exit_code == 0
    assert "Not indexed" in result.output
    assert _count(indexed) == 2


def test_remove_confirmation_declined(indexed: Path) -> None:
    result = runner.invoke(app, ["remove", "--root", str(indexed), "-p", "a.md"], input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert _count(indexed) == 2


def test_remove_all(indexed: Path) -> None:
    result = runner.invoke(app, ["remove", "--root", str(indexed), "--all", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Removed 2 document(s)" in result.output
    assert _count(indexed) == 0
