"""Tests for kbsync status."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from kbsync.cli.main import app

runner = CliRunner()


def test_status_without_store(cli_project: Path) -> None:
    result = runner.invoke(app, ["status", "--root", str(cli_project)])
    assert result.exit_code == 0, result.output
    assert "No knowledge store yet" in result.output
    assert not (cli_project / ".kbsync.db").exists()


def test_status_after_reconcile(cli_project: Path) -> None:
    (cli_project / "docs" / "a.md").write_text("# A\n\nbody\n", encoding="utf-8")
    runner.invoke(app, ["reconcile", "--root", str(cli_project)])

    result = runner.invoke(app, ["status", "--root", str(cli_project)])

    assert result.exit_code == 0, result.output
    assert "Tenant" in result.output
    assert "handbook:main:" in result.output
    assert "project" in result.output
    assert "external" in result.output
    assert "vectors" in result.output


def test_status_shows_external_path(cli_project: Path) -> None:
    (cli_project / "kbsync.yaml").write_text(
        "embedding:\n  dimensions: 8\nexternal:\n  path: ../shared\n", encoding="utf-8"
    )
    result = runner.invoke(app, ["status", "--root", str(cli_project)])
    assert result.exit_code == 0
    assert "read-only" in result.output
