"""StudyWeave configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (STUDYWEAVE_GENERATION_MODEL, STUDYWEAVE_EMBEDDING_MODEL,
                             STUDYWEAVE_DB, STUDYWEAVE_USER)
  3. Per-project studyweave.yaml  (current working directory)
  4. Global ~/.studyweave/config.yaml  (model defaults only, no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".studyweave"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "studyweave.yaml"

DEFAULT_DB_PATH: str = ".studyweave.db"
DEFAULT_USER_ID: str = "local"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s). Does NOT match max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chat"]
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
class EmbeddingCfg:
    """Embedding model configuration (studyweave.yaml: embedding:)."""

    model: str = "gemini/text-embedding-004"
    dimensions: int = 768


@dataclass
class GenerationCfg:
    """Response generation configuration (studyweave.yaml: generation:).

    Attributes:
        models: Fallback chain in priority order; the first entry is the
            primary (fast) model, later entries are progressively more
            conservative.
        temperature: Sampling temperature for structured generation.
        max_tokens: Maximum output tokens per attempt.
        history_limit: Number of prior messages replayed to the model.
        max_document_chars: Per-document content cap inside the system prompt.
        max_retries: Schema re-asks per model (instructor), not a chain retry.
    """

    models: list[str] = field(
        default_factory=lambda: ["gemini/gemini-2.0-flash", "gemini/gemini-1.5-pro"]
    )
    temperature: float = 0.4
    max_tokens: int = 2_048
    history_limit: int = 10
    max_document_chars: int = 1_500
    max_retries: int = 1


@dataclass
class RetrievalCfg:
    """Retrieval policy configuration (studyweave.yaml: retrieval:)."""

    max_results: int = 6
    thresholds: list[float] = field(default_factory=lambda: [0.2, 0.3, 0.4, 0.5])
    max_usable_results: int = 15
    max_query_terms: int = 5
    min_term_length: int = 3
    keyword_similarity: float = 0.3
    fallback_similarity: float = 0.4


@dataclass
class ChatCfg:
    """Conversation handling configuration (studyweave.yaml: chat:)."""

    max_message_length: int = 10_000
    title_words: int = 6
    default_title: str = "New Conversation"


@dataclass
class StudyWeaveConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)
    db_path: str = DEFAULT_DB_PATH
    user_id: str = DEFAULT_USER_ID


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
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
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: StudyWeaveConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(
            f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}"
        )
    if not cfg.generation.models:
        raise ConfigError("generation.models must list at least one model")
    if cfg.retrieval.max_results < 1:
        raise ConfigError(
            f"retrieval.max_results must be >= 1, got {cfg.retrieval.max_results}"
        )
    if not cfg.retrieval.thresholds:
        raise ConfigError("retrieval.thresholds must contain at least one value")
    for t in cfg.retrieval.thresholds:
        if not 0.0 <= t <= 1.0:
            raise ConfigError(f"retrieval.thresholds values must be in [0, 1], got {t}")


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


def _cfg_from_dict(data: dict[str, Any]) -> StudyWeaveConfig:
    """Build a *StudyWeaveConfig* from a merged raw YAML dict."""
    cfg = StudyWeaveConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        models = g.get("models", cfg.generation.models)
        if isinstance(models, str):
            models = [models]
        cfg.generation = GenerationCfg(
            models=[str(m) for m in models],
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            history_limit=int(g.get("history_limit", cfg.generation.history_limit)),
            max_document_chars=int(
                g.get("max_document_chars", cfg.generation.max_document_chars)
            ),
            max_retries=int(g.get("max_retries", cfg.generation.max_retries)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            max_results=int(r.get("max_results", cfg.retrieval.max_results)),
            thresholds=sorted(
                float(t) for t in r.get("thresholds", cfg.retrieval.thresholds)
            ),
            max_usable_results=int(
                r.get("max_usable_results", cfg.retrieval.max_usable_results)
            ),
            max_query_terms=int(r.get("max_query_terms", cfg.retrieval.max_query_terms)),
            min_term_length=int(r.get("min_term_length", cfg.retrieval.min_term_length)),
            keyword_similarity=float(
                r.get("keyword_similarity", cfg.retrieval.keyword_similarity)
            ),
            fallback_similarity=float(
                r.get("fallback_similarity", cfg.retrieval.fallback_similarity)
            ),
        )

    if "chat" in data:
        c = data["chat"] or {}
        cfg.chat = ChatCfg(
            max_message_length=int(
                c.get("max_message_length", cfg.chat.max_message_length)
            ),
            title_words=int(c.get("title_words", cfg.chat.title_words)),
            default_title=str(c.get("default_title", cfg.chat.default_title)),
        )

    return cfg


def _apply_env_overrides(cfg: StudyWeaveConfig) -> StudyWeaveConfig:
    """Apply STUDYWEAVE_* environment variable overrides (layer 2).

    STUDYWEAVE_GENERATION_MODEL becomes the primary model; the configured
    chain is kept behind it as fallbacks.
    """
    if model := os.environ.get("STUDYWEAVE_GENERATION_MODEL"):
        rest = [m for m in cfg.generation.models if m != model]
        cfg.generation.models = [model, *rest]
    if model := os.environ.get("STUDYWEAVE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("STUDYWEAVE_DB"):
        cfg.db_path = db_path
    if user_id := os.environ.get("STUDYWEAVE_USER"):
        cfg.user_id = user_id
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> StudyWeaveConfig:
    """Load and return a merged *StudyWeaveConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *studyweave.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *StudyWeaveConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
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

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
