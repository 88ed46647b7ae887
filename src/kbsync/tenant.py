"""Tenant context: the (project, branch, path-hash) triple that scopes every read and write.

The tenant is a value, not ambient state. It is built once when a project is
activated and passed explicitly into every lifecycle, repository, and
reconciliation call.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

PATH_HASH_LENGTH = 16
KEY_SEPARATOR = ":"
DEFAULT_BRANCH = "main"

_HEAD_REF_RE = re.compile(r"^ref:\s*refs/heads/(.+)$")


@dataclass(frozen=True)
class TenantContext:
    """Isolation unit for stored documents.

    Attributes:
        project_name: Human-readable project name (usually the repo directory name).
        branch_name: Active git branch.
        path_hash: First 16 hex chars of SHA-256 over the normalized repo root path.
    """

    project_name: str
    branch_name: str
    path_hash: str

    def __post_init__(self) -> None:
        for name in ("project_name", "branch_name", "path_hash"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
            if KEY_SEPARATOR in value:
                raise ValueError(f"{name} must not contain {KEY_SEPARATOR!r}: {value!r}")

    @classmethod
    def for_root(
        cls,
        root: Path | str,
        branch_name: str | None = None,
        project_name: str | None = None,
    ) -> TenantContext:
        """Build a tenant for the repository at *root*.

        Args:
            root: Repository root directory (made absolute before hashing).
            branch_name: Branch override; detected from ``.git/HEAD`` when None.
            project_name: Project name override; defaults to the root directory name.
        """
        absolute = Path(root).expanduser().resolve()
        return cls(
            project_name=project_name or extract_project_name(str(absolute)),
            branch_name=branch_name or detect_branch(absolute),
            path_hash=compute_path_hash(str(absolute)),
        )

    @property
    def key(self) -> str:
        """Flat ``project:branch:hash`` form, used in logs and CLI output."""
        return KEY_SEPARATOR.join((self.project_name, self.branch_name, self.path_hash))

    @classmethod
    def from_key(cls, key: str) -> TenantContext:
        """Parse a key produced by :attr:`key`.

        Raises:
            ValueError: If *key* does not have exactly three non-empty parts.
        """
        parts = key.split(KEY_SEPARATOR)
        if len(parts) != 3 or not all(p.strip() for p in parts):
            raise ValueError(
                f"Invalid tenant key {key!r}; expected 'project{KEY_SEPARATOR}branch{KEY_SEPARATOR}hash'"
            )
        return cls(*parts)

    def __str__(self) -> str:
        return self.key


def normalize_root_path(path: str) -> str:
    """Normalize separators to ``/`` and trim trailing separators.

    The filesystem root itself (``/``) is kept as-is.
    """
    normalized = path.replace("\\", "/")
    trimmed = normalized.rstrip("/")
    return trimmed or normalized[:1]


def compute_path_hash(path: str) -> str:
    """Return the first 16 lowercase hex chars of SHA-256 of the normalized *path*."""
    if not path or not path.strip():
        raise ValueError("path must be a non-empty string")
    digest = hashlib.sha256(normalize_root_path(path).encode("utf-8")).hexdigest()
    return digest[:PATH_HASH_LENGTH]


def extract_project_name(path: str) -> str:
    """Return the last path component of *path* (after normalization)."""
    normalized = normalize_root_path(path)
    name = normalized.rsplit("/", 1)[-1]
    if not name.strip():
        raise ValueError(f"Could not extract project name from path: {path!r}")
    return name


def detect_branch(root: Path) -> str:
    """Read the current branch from ``.git/HEAD``.

    Detached heads and non-git directories fall back to ``main``.
    """
    head = root / ".git" / "HEAD"
    try:
        content = head.read_text(encoding="utf-8").strip()
    except OSError:
        return DEFAULT_BRANCH
    match = _HEAD_REF_RE.match(content)
    if not match:
        return DEFAULT_BRANCH
    # KEY_SEPARATOR is reserved in tenant keys
    return match.group(1).strip().replace(KEY_SEPARATOR, "-") or DEFAULT_BRANCH
