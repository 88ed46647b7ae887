"""Tests for kbsync search."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import long_markdown
from kbsync.cli.main import app

runner = CliRunner()


@pytest.fixture
def indexed(cli_project: Path) -> Path:
    docs = cli_project / "docs"
    (docs / "note.md").write_text("# Note\n\nA short note.\n", encoding="utf-8")
    (docs / "guide.md").write_text(long_markdown(), encoding="utf-8")
    result = runner.invoke(app, ["reconcile", "--root", str(cli_project)])
    assert result.exit_code == 0, result.output
    return cli_project


def test_search_documents(indexed: Path) -> None:
    result = runner.invoke(
        app, ["search", "short note", "--root", str(indexed), "--min-relevance", "0"]
    )
    assert result.exit_code == 0, result.output
    assert "note.md" in result.output
    assert "guide.md" in result.output


def test_search_limit(indexed: Path) -> None:
    result = runner.invoke(
        app, ["search", "anything", "--root", str(indexed), "--min-relevance", "0", "-n", "1"]
    )
    assert result.exit_code == 0
    assert ("note.md" in result.output) != ("guide.md" in result.output)


def test_search_chunks_shows_line_ranges(indexed: Path) -> None:
    result = runner.invoke(
        app, ["search", "part", "--root", str(indexed), "--chunks", "--min-relevance", "0"]
    )
    assert result.exit_code == 0, result.output
    assert "guide.md:" in result.output
    assert "note.md" not in result.output


def test_search_no_results_above_threshold(indexed: Path) -> None:
    result = runner.invoke(
        app, ["search", "unrelated", "--root", str(indexed), "--min-relevance", "1"]
    )
    assert result.exit_code == 0
    assert "No results" in result.output


def test_search_needs_api_key(indexed: Path, monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY")
    result = runner.invoke(app, ["search", "x", "--root", str(indexed)])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output
