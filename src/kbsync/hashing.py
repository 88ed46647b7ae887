"""Content hashing used for change detection."""

from __future__ import annotations

import hashlib
from pathlib import Path


def content_hash(text: str) -> str:
    """SHA-256 hex digest of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def file_hash(path: Path) -> str:
    """SHA-256 hex digest of the decoded text of *path*.

    The file is decoded the same way the lifecycle manager reads it, so the
    result always equals ``content_hash(read_text(path))``.
    """
    return content_hash(read_text(path))


def read_text(path: Path) -> str:
    """Read *path* as UTF-8 (undecodable bytes replaced) with newlines preserved."""
    with path.open("r", encoding="utf-8", errors="replace", newline="") as fh:
        return fh.read()
