"""Tests for per-path event debouncing."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from kbsync.watch.debouncer import FileChangeDebouncer, coalesce
from kbsync.watch.events import FileChangeEvent, FileChangeKind

K = FileChangeKind
A = Path("/kb/a.md")
B = Path("/kb/b.md")
C = Path("/kb/c.md")


class Collector:
    def __init__(self, expected: int = 1) -> None:
        self.events: list[FileChangeEvent] = []
        self._expected = expected
        self.done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, event: FileChangeEvent) -> None:
        with self._lock:
            self.events.append(event)
            if len(self.events) >= self._expected:
                self.done.set()

    def kinds(self) -> dict[Path, FileChangeKind]:
        return {e.path: e.kind for e in self.events}


@pytest.fixture
def sink():
    return Collector()


@pytest.fixture
def debouncer(sink):
    # long window: tests flush explicitly
    d = FileChangeDebouncer(sink, window_ms=60_000)
    yield d
    d.close(flush=False)


@pytest.mark.parametrize(
    "previous,new,expected",
    [
        (K.CREATED, K.CHANGED, K.CREATED),
        (K.CREATED, K.DELETED, K.DELETED),
        (K.DELETED, K.CREATED, K.CHANGED),
        (K.DELETED, K.CHANGED, K.CHANGED),
        (K.CHANGED, K.CHANGED, K.CHANGED),
        (K.CHANGED, K.DELETED, K.DELETED),
    ],
)
def test_coalesce_rules(previous, new, expected):
    merged = coalesce(FileChangeEvent(A, previous), FileChangeEvent(A, new))
    assert merged.kind is expected


def test_coalesce_rename_then_change_stays_rename():
    merged = coalesce(FileChangeEvent(B, K.RENAMED, old_path=A), FileChangeEvent(B, K.CHANGED))
    assert merged.kind is K.RENAMED
    assert merged.old_path == A


def test_rename_requires_old_path():
    with pytest.raises(ValueError):
        FileChangeEvent(A, K.RENAMED)


def test_burst_becomes_one_event(debouncer, sink):
    for _ in range(5):
        debouncer.submit(FileChangeEvent(A, K.CHANGED))
    assert debouncer.pending_count == 1
    assert debouncer.flush() == 1
    assert [e.kind for e in sink.events] == [K.CHANGED]


def test_paths_are_debounced_independently(debouncer, sink):
    debouncer.submit(FileChangeEvent(A, K.CREATED))
    debouncer.submit(FileChangeEvent(B, K.CHANGED))
    debouncer.submit(FileChangeEvent(A, K.CHANGED))
    debouncer.flush()
    assert sink.kinds() == {A: K.CREATED, B: K.CHANGED}


def test_rename_absorbs_pending_old_path(debouncer, sink):
    debouncer.submit(FileChangeEvent(A, K.CHANGED))
    debouncer.submit(FileChangeEvent(B, K.RENAMED, old_path=A))
    debouncer.flush()
    assert len(sink.events) == 1
    assert sink.events[0].kind is K.RENAMED
    assert sink.events[0].old_path == A


def test_chained_renames_collapse(debouncer, sink):
    debouncer.submit(FileChangeEvent(B, K.RENAMED, old_path=A))
    debouncer.submit(FileChangeEvent(C, K.RENAMED, old_path=B))
    debouncer.flush()
    assert len(sink.events) == 1
    assert (sink.events[0].old_path, sink.events[0].path) == (A, C)


def test_rename_then_delete_deletes_both_paths(debouncer, sink):
    debouncer.submit(FileChangeEvent(B, K.RENAMED, old_path=A))
    debouncer.submit(FileChangeEvent(B, K.DELETED))
    debouncer.flush()
    assert sink.kinds() == {A: K.DELETED, B: K.DELETED}


def test_event_emitted_after_quiet_window():
    sink = Collector()
    debouncer = FileChangeDebouncer(sink, window_ms=20)
    try:
        debouncer.submit(FileChangeEvent(A, K.CHANGED))
        assert sink.done.wait(5)
        assert sink.events[0].path == A
        assert debouncer.pending_count == 0
    finally:
        debouncer.close()


def test_close_flushes_and_rejects_new_events(sink):
    debouncer = FileChangeDebouncer(sink, window_ms=60_000)
    debouncer.submit(FileChangeEvent(A, K.CHANGED))
    debouncer.close()
    debouncer.submit(FileChangeEvent(B, K.CHANGED))
    assert [e.path for e in sink.events] == [A]
    assert debouncer.pending_count == 0


def test_close_without_flush_drops_pending(sink):
    debouncer = FileChangeDebouncer(sink, window_ms=60_000)
    debouncer.submit(FileChangeEvent(A, K.CHANGED))
    debouncer.close(flush=False)
    assert sink.events == []


def test_sink_errors_do_not_escape():
    def broken(event):
        raise RuntimeError("sink down")

    debouncer = FileChangeDebouncer(broken, window_ms=60_000)
    debouncer.submit(FileChangeEvent(A, K.CHANGED))
    assert debouncer.flush() == 1
    debouncer.close()


def test_negative_window_rejected(sink):
    with pytest.raises(ValueError):
        FileChangeDebouncer(sink, window_ms=-1)
