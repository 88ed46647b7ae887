"""Tests for project activation and its background work."""

from __future__ import annotations

import sqlite3
import time

import pytest

from conftest import FakeEmbedder
from kbsync.config import KbsyncConfig
from kbsync.db.models import DocumentSet
from kbsync.session import KnowledgeSession, resolve_under

NOTE = "# Note\n\nbody\n"


def _wait_for(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def project(docs_root):
    return docs_root.parent


@pytest.fixture
def config() -> KbsyncConfig:
    cfg = KbsyncConfig()
    cfg.project.branch = "main"
    cfg.chunking.threshold_lines = 20
    cfg.watcher.debounce_ms = 50
    cfg.retry.max_attempts = 1
    return cfg


@pytest.fixture
def session_embedder():
    return FakeEmbedder()


def test_resolve_under(tmp_path):
    assert resolve_under(tmp_path, "a/b.db") == tmp_path / "a" / "b.db"
    assert resolve_under(tmp_path, "/abs/x.db") == resolve_under(tmp_path / "other", "/abs/x.db")


def test_open_builds_collaborators(project, config, session_embedder):
    with KnowledgeSession.open(project, config, embedder=session_embedder) as session:
        assert session.tenant.project_name == "repo"
        assert session.tenant.branch_name == "main"
        assert (project / ".kbsync.db").exists()
        assert session.manager.root == (project / "docs").resolve()
        assert session.external is None
        assert session.watcher is None


def test_project_name_override(project, config, session_embedder):
    config.project.name = "handbook"
    with KnowledgeSession.open(project, config, embedder=session_embedder) as session:
        assert session.tenant.project_name == "handbook"


def test_reconcile_indexes_docs_dir(project, config, session_embedder, write_doc):
    write_doc("a.md", NOTE)
    (project / "outside-docs.md").write_text(NOTE, encoding="utf-8")

    with KnowledgeSession.open(project, config, embedder=session_embedder) as session:
        result = session.reconcile()
        assert result.added == 1
        assert session.repository.get_by_path(session.tenant, "a.md") is not None
        assert session.results == [result]


def test_external_set_configured(project, config, session_embedder, write_doc, tmp_path):
    shared = tmp_path / "shared"
    shared.mkdir()
    (shared / "policy.md").write_text(NOTE, encoding="utf-8")
    write_doc("a.md", NOTE)
    config.external.path = str(shared)

    with KnowledgeSession.open(project, config, embedder=session_embedder) as session:
        results = session.reconcile_all()
        assert [r.doc_set for r in results] == [DocumentSet.PROJECT, DocumentSet.EXTERNAL]
        assert session.manager_for(DocumentSet.EXTERNAL).read_only
        assert session.repository.count_documents(session.tenant, DocumentSet.EXTERNAL) == 1


def test_external_requires_configuration(project, config, session_embedder):
    with KnowledgeSession.open(project, config, embedder=session_embedder) as session:
        with pytest.raises(ValueError):
            session.manager_for(DocumentSet.EXTERNAL)
        with pytest.raises(ValueError):
            session.reconcile(DocumentSet.EXTERNAL)


def test_activate_runs_startup_reconciliation(project, config, session_embedder, write_doc):
    write_doc("a.md", NOTE)
    write_doc("b.md", NOTE)

    session = KnowledgeSession.activate(project, config, embedder=session_embedder, watch=False)
    try:
        assert session.wait_for_startup(10)
        assert session.results[0].added == 2
    finally:
        session.close()


def test_live_changes_are_indexed(project, config, session_embedder, write_doc):
    session = KnowledgeSession.activate(project, config, embedder=session_embedder)
    try:
        assert session.wait_for_startup(10)
        time.sleep(0.3)
        write_doc("live.md", NOTE)
        assert _wait_for(
            lambda: session.repository.get_by_path(session.tenant, "live.md") is not None
        )
    finally:
        session.close()


def test_missing_docs_dir_skips_watching(tmp_path, config, session_embedder):
    root = tmp_path / "empty-project"
    root.mkdir()
    session = KnowledgeSession.activate(root, config, embedder=session_embedder)
    try:
        assert session.wait_for_startup(10)
        assert session.watcher is None
        assert session.results[0].files_scanned == 0
        assert session.results[0].aborted
    finally:
        session.close()


def test_periodic_reconciliation(project, config, session_embedder, write_doc):
    config.reconcile.interval_seconds = 0.1
    session = KnowledgeSession.activate(project, config, embedder=session_embedder, watch=False)
    try:
        assert session.wait_for_startup(10)
        write_doc("later.md", NOTE)
        assert _wait_for(lambda: len(session.results) >= 2)
        assert _wait_for(
            lambda: session.repository.get_by_path(session.tenant, "later.md") is not None
        )
    finally:
        session.close()


def test_close_is_idempotent_and_closes_store(project, config, session_embedder):
    session = KnowledgeSession.activate(project, config, embedder=session_embedder, watch=False)
    session.close()
    session.close()
    assert session.cancel.is_set()
    with pytest.raises(sqlite3.ProgrammingError):
        session.conn.execute("SELECT 1")
