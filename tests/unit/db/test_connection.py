"""Tests for the SQLite connection layer."""

from __future__ import annotations

import pytest

from kbsync.db.connection import Database
from kbsync.errors import StoreUnavailableError


def test_connect_loads_sqlite_vec(tmp_path):
    conn = Database(tmp_path / "kb.db").connect()
    version = conn.execute("SELECT vec_version()").fetchone()[0]
    assert version
    conn.close()


def test_foreign_keys_enabled(tmp_path):
    conn = Database(tmp_path / "kb.db").connect()
    assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
    conn.close()


def test_context_manager_closes(tmp_path):
    db = Database(tmp_path / "kb.db")
    with db as conn:
        conn.execute("SELECT 1")
    assert db._conn is None


def test_unopenable_path_raises_store_unavailable(tmp_path):
    with pytest.raises(StoreUnavailableError):
        Database(tmp_path / "missing-dir" / "kb.db").connect()
