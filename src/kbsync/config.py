"""kbsync configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (KBSYNC_EMBEDDING_MODEL, KBSYNC_EMBEDDING_DIMENSIONS,
     KBSYNC_BRANCH, KBSYNC_DB_PATH)
  3. Per-project kbsync.yaml  (in the repository root)
  4. Global ~/.kbsync/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".kbsync"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "kbsync.yaml"

# Key names that look like credentials. Matching is per path segment, so
# "max_tokens" or "token_budget" stay legal while "token" or "client_secret" do not.
_CREDENTIAL_KEY_RE: re.Pattern[str] = re.compile(
    r"(?:^|[_\-])(?:api[_\-]?key|apikey|token|secret|password|passwd|credentials?)$",
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["project", "embedding", "chunking", "watcher", "reconcile", "retry", "search", "external"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ProjectCfg:
    """Project identity and store location (kbsync.yaml: project:).

    Attributes:
        name: Project name; empty means "use the root directory name".
        branch: Branch override; None means "read .git/HEAD".
        db_path: Store file, relative to the repository root unless absolute.
    """

    name: str = ""
    branch: str | None = None
    db_path: str = ".kbsync.db"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (kbsync.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout_seconds: float = 60.0


@dataclass
class ChunkingCfg:
    """Chunking threshold (kbsync.yaml: chunking:)."""

    threshold_lines: int = 500


@dataclass
class WatcherCfg:
    """Live file watching (kbsync.yaml: watcher:)."""

    debounce_ms: int = 500
    include: list[str] = field(default_factory=lambda: ["**/*.md"])
    exclude: list[str] = field(
        default_factory=lambda: ["**/node_modules/**", "**/.git/**"]
    )
    workers: int = 2
    docs_dir: str = "docs"


@dataclass
class ReconcileCfg:
    """Periodic reconciliation (kbsync.yaml: reconcile:). 0 = startup only."""

    interval_seconds: float = 0.0


@dataclass
class RetryCfg:
    """Exponential backoff for embedding and store writes (kbsync.yaml: retry:)."""

    max_attempts: int = 3
    initial_delay_ms: int = 200
    max_delay_ms: int = 5_000
    multiplier: float = 2.0
    jitter: bool = True


@dataclass
class SearchCfg:
    """Default vector search limits (kbsync.yaml: search:)."""

    limit: int = 10
    min_relevance: float = 0.5


@dataclass
class ExternalCfg:
    """Read-only external document set (kbsync.yaml: external:)."""

    path: str | None = None
    include: list[str] = field(default_factory=lambda: ["**/*.md"])
    exclude: list[str] = field(default_factory=list)


@dataclass
class KbsyncConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    project: ProjectCfg = field(default_factory=ProjectCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    watcher: WatcherCfg = field(default_factory=WatcherCfg)
    reconcile: ReconcileCfg = field(default_factory=ReconcileCfg)
    retry: RetryCfg = field(default_factory=RetryCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    external: ExternalCfg = field(default_factory=ExternalCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _iter_keys(data: Any, prefix: str = ""):
    """Yield ``(dotted_path, key)`` for every mapping key in *data*."""
    if not isinstance(data, dict):
        return
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        yield dotted, str(key)
        yield from _iter_keys(value, dotted)


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Reject credential-like keys anywhere in the global config."""
    for dotted, key in _iter_keys(data):
        if _CREDENTIAL_KEY_RE.search(key):
            env_name = key.upper().replace("-", "_")
            raise ConfigError(
                f"Global config '{source}' contains a forbidden key '{dotted}'. "
                f"Credentials are read from the environment only; remove the key "
                f"from {source.name} and export {env_name} instead."
            )


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignoring it.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: KbsyncConfig) -> None:
    """Raise ConfigError for values no component can work with."""
    if cfg.chunking.threshold_lines < 1:
        raise ConfigError(
            f"chunking.threshold_lines must be >= 1, got {cfg.chunking.threshold_lines}"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.watcher.debounce_ms < 0:
        raise ConfigError(f"watcher.debounce_ms must be >= 0, got {cfg.watcher.debounce_ms}")
    if cfg.watcher.workers < 1:
        raise ConfigError(f"watcher.workers must be >= 1, got {cfg.watcher.workers}")
    if cfg.reconcile.interval_seconds < 0:
        raise ConfigError(
            f"reconcile.interval_seconds must be >= 0, got {cfg.reconcile.interval_seconds}"
        )
    if cfg.retry.max_attempts < 1:
        raise ConfigError(f"retry.max_attempts must be >= 1, got {cfg.retry.max_attempts}")
    if not 0.0 <= cfg.search.min_relevance <= 1.0:
        raise ConfigError(
            f"search.min_relevance must be in [0.0, 1.0], got {cfg.search.min_relevance}"
        )
    if cfg.search.limit < 1:
        raise ConfigError(f"search.limit must be >= 1, got {cfg.search.limit}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _str_list(raw: Any, default: list[str]) -> list[str]:
    if raw is None:
        return list(default)
    if isinstance(raw, str):
        return [raw]
    return [str(item) for item in raw]


def _cfg_from_dict(data: dict[str, Any]) -> KbsyncConfig:
    """Build a *KbsyncConfig* from a merged raw YAML dict."""
    cfg = KbsyncConfig()

    if "project" in data:
        p = data["project"] or {}
        cfg.project = ProjectCfg(
            name=str(p.get("name", cfg.project.name) or ""),
            branch=p.get("branch") or cfg.project.branch,
            db_path=str(p.get("db_path", cfg.project.db_path)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            timeout_seconds=float(e.get("timeout_seconds", cfg.embedding.timeout_seconds)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            threshold_lines=int(c.get("threshold_lines", cfg.chunking.threshold_lines)),
        )

    if "watcher" in data:
        w = data["watcher"] or {}
        cfg.watcher = WatcherCfg(
            debounce_ms=int(w.get("debounce_ms", cfg.watcher.debounce_ms)),
            include=_str_list(w.get("include"), cfg.watcher.include),
            exclude=_str_list(w.get("exclude"), cfg.watcher.exclude),
            workers=int(w.get("workers", cfg.watcher.workers)),
            docs_dir=str(w.get("docs_dir", cfg.watcher.docs_dir)),
        )

    if "reconcile" in data:
        r = data["reconcile"] or {}
        cfg.reconcile = ReconcileCfg(
            interval_seconds=float(r.get("interval_seconds", cfg.reconcile.interval_seconds)),
        )

    if "retry" in data:
        rt = data["retry"] or {}
        cfg.retry = RetryCfg(
            max_attempts=int(rt.get("max_attempts", cfg.retry.max_attempts)),
            initial_delay_ms=int(rt.get("initial_delay_ms", cfg.retry.initial_delay_ms)),
            max_delay_ms=int(rt.get("max_delay_ms", cfg.retry.max_delay_ms)),
            multiplier=float(rt.get("multiplier", cfg.retry.multiplier)),
            jitter=bool(rt.get("jitter", cfg.retry.jitter)),
        )

    if "search" in data:
        s = data["search"] or {}
        cfg.search = SearchCfg(
            limit=int(s.get("limit", cfg.search.limit)),
            min_relevance=float(s.get("min_relevance", cfg.search.min_relevance)),
        )

    if "external" in data:
        x = data["external"] or {}
        cfg.external = ExternalCfg(
            path=x.get("path") or cfg.external.path,
            include=_str_list(x.get("include"), cfg.external.include),
            exclude=_str_list(x.get("exclude"), cfg.external.exclude),
        )

    return cfg


def _apply_env_overrides(cfg: KbsyncConfig) -> KbsyncConfig:
    """Apply KBSYNC_* environment variable overrides."""
    if model := os.environ.get("KBSYNC_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if dims := os.environ.get("KBSYNC_EMBEDDING_DIMENSIONS"):
        try:
            cfg.embedding.dimensions = int(dims)
        except ValueError:
            raise ConfigError(
                f"KBSYNC_EMBEDDING_DIMENSIONS must be an integer, got '{dims}'"
            ) from None
    if branch := os.environ.get("KBSYNC_BRANCH"):
        cfg.project.branch = branch
    if db_path := os.environ.get("KBSYNC_DB_PATH"):
        cfg.project.db_path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> KbsyncConfig:
    """Load and return a merged *KbsyncConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *kbsync.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *KbsyncConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, a file is
            not a YAML mapping, or a value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)

    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return data


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.kbsync/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# kbsync global configuration: model defaults only.\n"
            "# NEVER store API keys here; use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
