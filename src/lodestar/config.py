"""Lodestar configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (LODESTAR_EMBEDDING_MODEL, LODESTAR_HOST_TYPE,
                             LODESTAR_DB_PATH, LODESTAR_REMOTE_URI)
  3. Per-project lodestar.yaml  (in the workspace directory)
  4. Global ~/.lodestar/config.yaml  (defaults only, no credentials)
  5. Hardcoded defaults

Credentials (provider API keys, AWS key pair) are read from the environment
only. All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lodestar.index.walker import DEFAULT_EXCLUDES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".lodestar"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lodestar.yaml"

# Fields that look like credentials; forbidden in global config.
# Does NOT match legitimate keys like max_tokens or batch_size.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|access[_\-]?key"          # access_key, aws_access_key_id
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "indexing", "retrieval", "storage", "remote", "host"]
)

_RERANKER_KINDS: frozenset[str] = frozenset(["llm", "cross-encoder"])
_METRICS: frozenset[str] = frozenset(["cosine", "l2"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (lodestar.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 64
    metric: str = "cosine"


@dataclass
class IndexingCfg:
    """Workspace scan and chunking (lodestar.yaml: indexing:)."""

    lines_per_chunk: int = 64
    max_depth: int = 64
    max_file_bytes: int = 1_000_000
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))


@dataclass
class RetrievalCfg:
    """Retrieval pipeline configuration (lodestar.yaml: retrieval:).

    Attributes:
        n_retrieve: Candidates fetched per corpus.
        n_final: Results returned; None derives it from the model context window.
        use_reranker: Rerank candidates before truncating to ``n_final``.
        reranker: ``llm`` (LLM judge) or ``cross-encoder`` (hosted rerank API).
        reranker_model: LiteLLM model string for the reranker.
        context_model: Model whose context window sizes the default ``n_final``.
    """

    n_retrieve: int = 25
    n_final: int | None = None
    use_reranker: bool = False
    reranker: str = "llm"
    reranker_model: str = "openai/gpt-4o-mini"
    context_model: str = "openai/gpt-4o"


@dataclass
class StorageCfg:
    """Local index location (lodestar.yaml: storage:)."""

    path: str = str(_GLOBAL_CONFIG_DIR / "index.db")


@dataclass
class RemoteCfg:
    """Remote index location; credentials come from the environment only."""

    uri: str = ""
    region: str = "ap-south-1"


@dataclass
class HostCfg:
    """Host type and extra unsupported (provider, host) pairs (lodestar.yaml: host:)."""

    type: str = "cli"
    unsupported: list[list[str]] = field(default_factory=list)


@dataclass
class LodestarConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    remote: RemoteCfg = field(default_factory=RemoteCfg)
    host: HostCfg = field(default_factory=HostCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any credential-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: LodestarConfig) -> None:
    positive = {
        "embedding.dimensions": cfg.embedding.dimensions,
        "embedding.batch_size": cfg.embedding.batch_size,
        "indexing.lines_per_chunk": cfg.indexing.lines_per_chunk,
        "indexing.max_depth": cfg.indexing.max_depth,
        "indexing.max_file_bytes": cfg.indexing.max_file_bytes,
        "retrieval.n_retrieve": cfg.retrieval.n_retrieve,
    }
    if cfg.retrieval.n_final is not None:
        positive["retrieval.n_final"] = cfg.retrieval.n_final
    for key, value in positive.items():
        if value < 1:
            raise ConfigError(f"{key} must be >= 1, got {value}")
    if cfg.embedding.metric not in _METRICS:
        raise ConfigError(
            f"embedding.metric must be one of {sorted(_METRICS)}, got '{cfg.embedding.metric}'"
        )
    if cfg.retrieval.reranker not in _RERANKER_KINDS:
        raise ConfigError(
            f"retrieval.reranker must be one of {sorted(_RERANKER_KINDS)}, "
            f"got '{cfg.retrieval.reranker}'"
        )
    if cfg.retrieval.n_final is not None and cfg.retrieval.n_final > cfg.retrieval.n_retrieve:
        raise ConfigError(
            f"retrieval.n_final ({cfg.retrieval.n_final}) must not exceed "
            f"retrieval.n_retrieve ({cfg.retrieval.n_retrieve})"
        )
    for pair in cfg.host.unsupported:
        if len(pair) != 2:
            raise ConfigError(f"host.unsupported entries must be [provider, host] pairs: {pair}")


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


def _cfg_from_dict(data: dict[str, Any]) -> LodestarConfig:
    """Build a *LodestarConfig* from a merged raw YAML dict."""
    cfg = LodestarConfig()

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            metric=str(e.get("metric", cfg.embedding.metric)),
        )

    if "indexing" in data:
        i = data["indexing"]
        cfg.indexing = IndexingCfg(
            lines_per_chunk=int(i.get("lines_per_chunk", cfg.indexing.lines_per_chunk)),
            max_depth=int(i.get("max_depth", cfg.indexing.max_depth)),
            max_file_bytes=int(i.get("max_file_bytes", cfg.indexing.max_file_bytes)),
            exclude=[str(p) for p in i.get("exclude", cfg.indexing.exclude)],
        )

    if "retrieval" in data:
        r = data["retrieval"]
        n_final = r.get("n_final", cfg.retrieval.n_final)
        cfg.retrieval = RetrievalCfg(
            n_retrieve=int(r.get("n_retrieve", cfg.retrieval.n_retrieve)),
            n_final=int(n_final) if n_final is not None else None,
            use_reranker=bool(r.get("use_reranker", cfg.retrieval.use_reranker)),
            reranker=str(r.get("reranker", cfg.retrieval.reranker)),
            reranker_model=str(r.get("reranker_model", cfg.retrieval.reranker_model)),
            context_model=str(r.get("context_model", cfg.retrieval.context_model)),
        )

    if "storage" in data:
        cfg.storage = StorageCfg(path=str(data["storage"].get("path", cfg.storage.path)))

    if "remote" in data:
        rm = data["remote"]
        cfg.remote = RemoteCfg(
            uri=str(rm.get("uri", cfg.remote.uri) or ""),
            region=str(rm.get("region", cfg.remote.region)),
        )

    if "host" in data:
        h = data["host"]
        cfg.host = HostCfg(
            type=str(h.get("type", cfg.host.type)),
            unsupported=[list(map(str, p)) for p in h.get("unsupported", [])],
        )

    return cfg


def _apply_env_overrides(cfg: LodestarConfig) -> LodestarConfig:
    """Apply LODESTAR_* environment variable overrides (layer 2)."""
    if model := os.environ.get("LODESTAR_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if host := os.environ.get("LODESTAR_HOST_TYPE"):
        cfg.host.type = host
    if db_path := os.environ.get("LODESTAR_DB_PATH"):
        cfg.storage.path = db_path
    if uri := os.environ.get("LODESTAR_REMOTE_URI"):
        cfg.remote.uri = uri
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LodestarConfig:
    """Load and return a merged *LodestarConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *lodestar.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains credential-like fields or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg
