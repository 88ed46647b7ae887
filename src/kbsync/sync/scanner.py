"""Disk enumeration with include/exclude globs."""

from __future__ import annotations

import fnmatch
import logging
import os
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from kbsync.errors import FileReadError, OperationCancelled
from kbsync.hashing import file_hash

logger = logging.getLogger(__name__)

# Editor swap/backup files never count as documents.
_TEMP_PREFIXES = ("~", ".#")
_TEMP_SUFFIXES = (".tmp", ".swp", ".swx", "~")


def _glob_match(rel: str, pattern: str) -> bool:
    # "**/" also matches zero directories, which fnmatch alone cannot express
    if fnmatch.fnmatchcase(rel, pattern):
        return True
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        if fnmatch.fnmatchcase(rel, pattern):
            return True
    return False


@dataclass(frozen=True)
class PathFilter:
    """Include/exclude glob filter over POSIX relative paths. Exclude always wins."""

    include: tuple[str, ...] = ("**/*.md",)
    exclude: tuple[str, ...] = ()

    @classmethod
    def of(cls, include: Iterable[str], exclude: Iterable[str]) -> PathFilter:
        return cls(tuple(include), tuple(exclude))

    def excluded(self, rel: str) -> bool:
        return any(_glob_match(rel, p) for p in self.exclude)

    def matches(self, rel: str) -> bool:
        if self.excluded(rel):
            return False
        return any(_glob_match(rel, p) for p in self.include)


def is_temp_file(name: str) -> bool:
    return name.startswith(_TEMP_PREFIXES) or name.endswith(_TEMP_SUFFIXES)


@dataclass(frozen=True)
class ScannedFile:
    relative_path: str
    content_hash: str


def iter_files(root: Path, path_filter: PathFilter) -> Iterable[str]:
    """Yield POSIX relative paths under *root* accepted by *path_filter*, sorted per directory.

    Hidden directories and excluded directories are not descended into.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"
        dirnames[:] = sorted(
            d
            for d in dirnames
            if not d.startswith(".") and not path_filter.excluded(f"{prefix}{d}/")
        )
        for name in sorted(filenames):
            if is_temp_file(name):
                continue
            rel = f"{prefix}{name}"
            if path_filter.matches(rel):
                yield rel


def scan(
    root: Path,
    path_filter: PathFilter,
    cancel: threading.Event | None = None,
) -> dict[str, ScannedFile]:
    """Hash every matching file under *root*.

    Files that vanish or cannot be read between listing and hashing are left
    out, exactly as if they had not been there.

    A missing root raises instead of reading as an empty tree.

    Raises:
        FileReadError: If *root* is not an existing directory.
        OperationCancelled: If *cancel* is set during the scan.
    """
    if not root.is_dir():
        raise FileReadError(str(root), "scan root is not a directory")

    found: dict[str, ScannedFile] = {}
    for rel in iter_files(root, path_filter):
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"scan of {root} cancelled")
        try:
            found[rel] = ScannedFile(rel, file_hash(root / rel))
        except OSError as exc:
            logger.debug("Skipping unreadable %s: %s", rel, exc)
    return found
