"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import pytest
import yaml

from kbsync.db.connection import Database
from kbsync.db.repository import Repository
from kbsync.db.schema import initialize
from kbsync.lifecycle.documents import DocumentLifecycleManager
from kbsync.retry import RetryPolicy
from kbsync.tenant import TenantContext

FAKE_MODEL = "fake/hash-embed"
FAKE_DIMS = 8


class FakeEmbedder:
    """Deterministic embedding client: the vector is derived from a hash of the text.

    Identical text always gives an identical (never all-zero) vector. Every
    call is recorded in ``calls``. Set ``fail_with`` to an exception to make
    the next calls raise it; ``fail_times`` limits how many.
    """

    def __init__(self, model: str = FAKE_MODEL, dimensions: int = FAKE_DIMS) -> None:
        self.model = model
        self.dimensions = dimensions
        self.calls: list[str] = []
        self.fail_with: Exception | None = None
        self.fail_times: int | None = None
        self._lock = threading.Lock()

    def embed(self, text: str, cancel: threading.Event | None = None) -> list[float]:
        with self._lock:
            self.calls.append(text)
            if self.fail_with is not None and (self.fail_times is None or self.fail_times > 0):
                if self.fail_times is not None:
                    self.fail_times -= 1
                raise self.fail_with
        return vector_for(text, self.dimensions)


def vector_for(text: str, dimensions: int = FAKE_DIMS) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(b + 1) / 256 for b in digest[:dimensions]]


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Keep ~/.kbsync/config.yaml and KBSYNC_* variables out of every test."""
    monkeypatch.setattr("kbsync.config._GLOBAL_CONFIG_PATH", tmp_path / "_home" / "config.yaml")
    for var in (
        "KBSYNC_EMBEDDING_MODEL",
        "KBSYNC_EMBEDDING_DIMENSIONS",
        "KBSYNC_BRANCH",
        "KBSYNC_DB_PATH",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".kbsync.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext("demo", "main", "0123456789abcdef")


@pytest.fixture
def other_tenant() -> TenantContext:
    return TenantContext("demo", "feature-x", "0123456789abcdef")


@pytest.fixture
def repo(tmp_db, embedder) -> Repository:
    return Repository(tmp_db, embedding_model=embedder.model, dimensions=embedder.dimensions)


@pytest.fixture
def docs_root(tmp_path) -> Path:
    root = tmp_path / "repo" / "docs"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def write_doc(docs_root) -> Callable[[str, str], Path]:
    """Write *text* to *rel* under the docs root and return the absolute path."""

    def _write(rel: str, text: str) -> Path:
        path = docs_root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def manager(repo, embedder, docs_root) -> DocumentLifecycleManager:
    """Lifecycle manager with a 20-line chunking threshold and no retry delays."""
    return DocumentLifecycleManager(
        repo,
        embedder,
        docs_root,
        threshold_lines=20,
        retry=RetryPolicy.no_retry(),
    )


def long_markdown(sections: int = 3, lines_per_section: int = 10, title: str = "Guide") -> str:
    """A markdown document with an H1 and *sections* H2 sections."""
    out = [f"# {title}", ""]
    for s in range(sections):
        out.append(f"## Part {s + 1}")
        out.extend(f"Line {i} of part {s + 1}." for i in range(lines_per_section))
    return "\n".join(out) + "\n"


@pytest.fixture
def make_long_markdown() -> Callable[..., str]:
    return long_markdown


# ---------------------------------------------------------------------------
# CLI projects
# ---------------------------------------------------------------------------


def fake_litellm_embedding(model: str, input: list[str], timeout: float | None = None):
    """Stand-in for ``litellm.embedding`` returning hash-derived vectors."""
    return SimpleNamespace(data=[{"embedding": vector_for(text)} for text in input])


@pytest.fixture
def cli_project(tmp_path, monkeypatch) -> Path:
    """A repository root with kbsync.yaml, an empty docs/ dir, and LiteLLM patched."""
    root = tmp_path / "handbook"
    (root / "docs").mkdir(parents=True)
    config = {
        "project": {"branch": "main"},
        "embedding": {"model": "openai/text-embedding-3-small", "dimensions": FAKE_DIMS},
        "chunking": {"threshold_lines": 20},
        "retry": {"max_attempts": 1},
        "watcher": {"debounce_ms": 50},
    }
    (root / "kbsync.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr("kbsync.ingest.embedding.litellm.embedding", fake_litellm_embedding)
    return root
