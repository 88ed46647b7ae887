"""Tests for disk/store reconciliation."""

from __future__ import annotations

import shutil
import threading

import pytest

from conftest import FakeEmbedder, long_markdown
from kbsync.db.models import Document, DocumentSet, PromotionLevel
from kbsync.db.repository import Repository
from kbsync.errors import EmbeddingError, FileReadError, StoreUnavailableError
from kbsync.lifecycle.documents import DocumentLifecycleManager
from kbsync.retry import RetryPolicy
from kbsync.sync.reconcile import (
    ReconcileAction,
    ReconciliationEngine,
    build_plan,
    external_engine,
)
from kbsync.sync.scanner import PathFilter, ScannedFile

NOTE = "# Note\n\nbody\n"


def _record(tenant, rel, digest, model="m"):
    return Document(id=f"id-{rel}", tenant=tenant, relative_path=rel, content_hash=digest, embedding_model=model)


@pytest.fixture
def engine(manager, repo):
    return ReconciliationEngine(manager, repo)


# ---------------------------------------------------------------------------
# build_plan
# ---------------------------------------------------------------------------


def test_build_plan_classifies_every_path(tenant):
    disk = {
        "new.md": ScannedFile("new.md", "h-new"),
        "same.md": ScannedFile("same.md", "h-same"),
        "edited.md": ScannedFile("edited.md", "h-2"),
    }
    records = [
        _record(tenant, "same.md", "h-same"),
        _record(tenant, "edited.md", "h-1"),
        _record(tenant, "gone.md", "h-gone"),
    ]

    plan = build_plan(disk, records)

    actions = {i.relative_path: i.action for i in plan.items}
    assert actions == {
        "new.md": ReconcileAction.INDEX,
        "same.md": ReconcileAction.SKIP,
        "edited.md": ReconcileAction.UPDATE,
        "gone.md": ReconcileAction.DELETE,
    }
    assert plan.total_actions == 3
    assert plan.files_on_disk == 3 and plan.records_in_store == 3


def test_build_plan_model_change_is_update(tenant):
    disk = {"a.md": ScannedFile("a.md", "h")}
    plan = build_plan(disk, [_record(tenant, "a.md", "h", model="old")], embedding_model="new")
    assert plan.items[0].action is ReconcileAction.UPDATE
    assert "old" in plan.items[0].reason


def test_build_plan_no_changes(tenant):
    disk = {"a.md": ScannedFile("a.md", "h")}
    plan = build_plan(disk, [_record(tenant, "a.md", "h")])
    assert not plan.has_changes


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


def test_first_run_indexes_everything(engine, repo, tenant, write_doc):
    write_doc("a.md", NOTE)
    write_doc("guide/b.md", long_markdown())

    result = engine.run(tenant)

    assert result.files_scanned == 2
    assert result.added == 2
    assert result.failed == 0
    assert not result.cancelled
    assert repo.count_documents(tenant) == 2


def test_second_run_is_a_noop(engine, tenant, write_doc, embedder):
    write_doc("a.md", NOTE)
    engine.run(tenant)
    calls = len(embedder.calls)

    result = engine.run(tenant)

    assert result.total_actions == 0
    assert result.skipped == 1
    assert len(embedder.calls) == calls


def test_run_applies_offline_changes(engine, repo, tenant, write_doc, docs_root):
    write_doc("keep.md", NOTE)
    write_doc("edit.md", NOTE)
    write_doc("drop.md", NOTE)
    engine.run(tenant)
    edited_id = repo.get_by_path(tenant, "edit.md").id

    write_doc("edit.md", NOTE + "changed\n")
    (docs_root / "drop.md").unlink()
    write_doc("add.md", NOTE)
    result = engine.run(tenant)

    assert (result.added, result.updated, result.deleted, result.skipped) == (1, 1, 1, 1)
    assert repo.get_by_path(tenant, "edit.md").id == edited_id
    assert repo.get_by_path(tenant, "drop.md") is None


def test_run_records_failures_and_continues(engine, repo, tenant, write_doc):
    write_doc("good.md", NOTE)
    write_doc("bad.md", "---\ntitle: [x\n---\n")

    result = engine.run(tenant)

    assert result.added == 1
    assert result.failed == 1
    assert result.failures[0].relative_path == "bad.md"


def test_run_respects_path_filter(manager, repo, tenant, write_doc):
    write_doc("a.md", NOTE)
    write_doc("drafts/b.md", NOTE)
    engine = ReconciliationEngine(manager, repo, PathFilter.of(["**/*.md"], ["drafts/**"]))
    assert engine.run(tenant).added == 1


def test_run_reembeds_after_model_change(manager, tmp_db, tenant, write_doc, docs_root):
    write_doc("a.md", NOTE)
    ReconciliationEngine(manager, manager.repository).run(tenant)

    other = FakeEmbedder(model="fake/next")
    other_repo = Repository(tmp_db, embedding_model=other.model, dimensions=other.dimensions)
    other_manager = DocumentLifecycleManager(
        other_repo, other, docs_root, threshold_lines=20, retry=RetryPolicy.no_retry()
    )

    result = ReconciliationEngine(other_manager, other_repo).run(tenant)

    assert result.updated == 1
    assert other_repo.get_by_path(tenant, "a.md").embedding_model == "fake/next"


def test_run_preserves_promotion_on_update(engine, manager, repo, tenant, write_doc):
    write_doc("a.md", NOTE)
    engine.run(tenant)
    manager.update_promotion_level("a.md", PromotionLevel.IMPORTANT, tenant)

    write_doc("a.md", NOTE + "more\n")
    engine.run(tenant)

    assert repo.get_by_path(tenant, "a.md").promotion_level is PromotionLevel.IMPORTANT


def test_cancelled_run_is_flagged(engine, repo, tenant, write_doc):
    write_doc("a.md", NOTE)
    cancel = threading.Event()
    cancel.set()

    result = engine.run(tenant, cancel)

    assert result.cancelled
    assert repo.count_documents(tenant) == 0


def test_embedding_outage_fails_files_not_run(engine, tenant, write_doc, embedder):
    write_doc("a.md", NOTE)
    write_doc("b.md", NOTE)
    embedder.fail_with = EmbeddingError("provider down", transient=False)

    result = engine.run(tenant)

    assert result.failed == 2
    assert result.added == 0


def test_store_unavailable_propagates(engine, tenant, write_doc, tmp_db):
    write_doc("a.md", NOTE)
    tmp_db.close()
    with pytest.raises(StoreUnavailableError):
        engine.run(tenant)


def test_missing_root_aborts_without_deleting(engine, repo, tenant, write_doc, docs_root):
    write_doc("a.md", NOTE)
    write_doc("guide/b.md", NOTE)
    assert engine.run(tenant).added == 2

    shutil.rmtree(docs_root)
    result = engine.run(tenant)

    assert result.aborted
    assert "not a directory" in result.error
    assert result.deleted == 0
    assert repo.count_documents(tenant) == 2


def test_plan_raises_for_missing_root(engine, tenant, docs_root):
    shutil.rmtree(docs_root)
    with pytest.raises(FileReadError):
        engine.plan(tenant)


def test_engine_exposes_manager_scope(engine, docs_root):
    assert engine.root == docs_root.resolve()
    assert engine.doc_set is DocumentSet.PROJECT
    assert not engine.read_only


# ---------------------------------------------------------------------------
# external (read-only) set
# ---------------------------------------------------------------------------


@pytest.fixture
def shared(tmp_path):
    root = tmp_path / "shared"
    (root / "team").mkdir(parents=True)
    (root / "team" / "policy.md").write_text("# Policy\n\nbe nice\n", encoding="utf-8")
    (root / "old").mkdir()
    (root / "old" / "legacy.md").write_text("# Legacy\n", encoding="utf-8")
    return root


def test_external_engine_indexes_into_external_set(repo, embedder, tenant, shared, manager, write_doc):
    write_doc("a.md", NOTE)
    manager.create("a.md", tenant)
    ext = external_engine(
        repo, embedder, shared, exclude=["old/**"], threshold_lines=20, retry=RetryPolicy.no_retry()
    )

    result = ext.run(tenant)

    assert ext.read_only
    assert result.doc_set is DocumentSet.EXTERNAL
    assert result.added == 1
    assert repo.get_by_path(tenant, "team/policy.md", DocumentSet.EXTERNAL) is not None
    assert repo.count_documents(tenant, DocumentSet.PROJECT) == 1


def test_external_engine_never_writes_source_files(repo, embedder, tenant, shared):
    before = {p: p.read_bytes() for p in shared.rglob("*.md")}
    external_engine(repo, embedder, shared, retry=RetryPolicy.no_retry()).run(tenant)
    assert {p: p.read_bytes() for p in shared.rglob("*.md")} == before


def test_external_deletions_do_not_touch_project_set(repo, embedder, tenant, shared, manager, write_doc):
    write_doc("team/policy.md", NOTE)
    manager.create("team/policy.md", tenant)
    ext = external_engine(repo, embedder, shared, retry=RetryPolicy.no_retry())
    ext.run(tenant)

    (shared / "team" / "policy.md").unlink()
    result = ext.run(tenant)

    assert result.deleted == 1
    assert repo.get_by_path(tenant, "team/policy.md", DocumentSet.PROJECT) is not None


def test_unmounted_external_root_keeps_external_records(repo, embedder, tenant, shared):
    ext = external_engine(repo, embedder, shared, retry=RetryPolicy.no_retry())
    assert ext.run(tenant).added == 2

    shutil.rmtree(shared)
    result = ext.run(tenant)

    assert result.aborted
    assert result.deleted == 0
    assert repo.count_documents(tenant, DocumentSet.EXTERNAL) == 2
