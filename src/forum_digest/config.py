"""forum-digest configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not in this module)
  2. Environment variables  (FORUM_DIGEST_LLM_MODEL / LLM_MODEL, OLLAMA_BASE_URL,
     OLLAMA_MAX_ELAPSED_SECS, FORUM_DIGEST_FORUM_URL)
  3. Per-project forum-digest.yaml  (next to the database)
  4. Global ~/.forum-digest/config.yaml  (model defaults only, no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".forum-digest"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "forum-digest.yaml"

# Key names that suggest a credential are forbidden in global config.
# Does NOT match legitimate keys like max_input_tokens or max_output_tokens.
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

_KNOWN_SECTIONS: frozenset[str] = frozenset(["forum", "chunk", "llm"])


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ForumCfg:
    """Discourse feed settings (forum-digest.yaml: forum:)."""

    base_url: str = "https://forum.zcashcommunity.com"
    topic_concurrency: int = 5
    max_posts_per_topic: int = 200
    request_timeout_secs: float = 30.0


@dataclass
class ChunkCfg:
    """Excerpt size sent to the model (forum-digest.yaml: chunk:).

    Kept small by default so local models answer quickly.
    """

    max_chars: int = 1_800


@dataclass
class LlmCfg:
    """Summarization backend and retry envelope (forum-digest.yaml: llm:).

    Attributes:
        model: LiteLLM model string, e.g. ``ollama_chat/qwen2.5:latest``.
        api_base: Backend base URL; empty means the provider default.
        max_input_tokens: Prompt budget; the excerpt shrinks until it fits.
        request_timeout_secs: Per-HTTP-request timeout.
        max_elapsed_secs: Total time the retry loop may spend.
        call_timeout_secs: Outer ceiling for the whole call, retries included.
        retry_on_decode_error: Retry when the reply is not valid summary JSON.
            Off by default: a stable malformed reply is not hammered.
        warmup: Send one throwaway request before a run to load the model.
    """

    model: str = "ollama_chat/qwen2.5:latest"
    api_base: str = "http://127.0.0.1:11434"
    max_input_tokens: int = 8_000
    max_output_tokens: int = 1_024
    temperature: float = 0.2
    json_mode: bool = True
    request_timeout_secs: float = 120.0
    max_elapsed_secs: float = 120.0
    call_timeout_secs: float = 240.0
    initial_backoff_secs: float = 0.5
    max_backoff_secs: float = 30.0
    retry_on_decode_error: bool = False
    warmup: bool = True


@dataclass
class DigestConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    forum: ForumCfg = field(default_factory=ForumCfg)
    chunk: ChunkCfg = field(default_factory=ChunkCfg)
    llm: LlmCfg = field(default_factory=LlmCfg)


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
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: DigestConfig) -> None:
    """Reject values that would break the pipeline at run time."""
    if cfg.chunk.max_chars < 0:
        raise ConfigError(f"chunk.max_chars must be >= 0, got {cfg.chunk.max_chars}")
    if cfg.forum.topic_concurrency < 1:
        raise ConfigError(
            f"forum.topic_concurrency must be >= 1, got {cfg.forum.topic_concurrency}"
        )
    if cfg.forum.max_posts_per_topic < 1:
        raise ConfigError(
            f"forum.max_posts_per_topic must be >= 1, got {cfg.forum.max_posts_per_topic}"
        )
    if cfg.llm.max_input_tokens < 1:
        raise ConfigError(f"llm.max_input_tokens must be >= 1, got {cfg.llm.max_input_tokens}")
    for name in ("request_timeout_secs", "call_timeout_secs"):
        value = getattr(cfg.llm, name)
        if value <= 0:
            raise ConfigError(f"llm.{name} must be > 0, got {value}")
    for name in ("max_elapsed_secs", "initial_backoff_secs", "max_backoff_secs"):
        value = getattr(cfg.llm, name)
        if value < 0:
            raise ConfigError(f"llm.{name} must be >= 0, got {value}")


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


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _cfg_from_dict(data: dict[str, Any]) -> DigestConfig:
    """Build a *DigestConfig* from a merged raw YAML dict."""
    cfg = DigestConfig()

    try:
        if "forum" in data:
            f = data["forum"] or {}
            cfg.forum = ForumCfg(
                base_url=str(f.get("base_url", cfg.forum.base_url)).rstrip("/"),
                topic_concurrency=int(f.get("topic_concurrency", cfg.forum.topic_concurrency)),
                max_posts_per_topic=int(
                    f.get("max_posts_per_topic", cfg.forum.max_posts_per_topic)
                ),
                request_timeout_secs=float(
                    f.get("request_timeout_secs", cfg.forum.request_timeout_secs)
                ),
            )

        if "chunk" in data:
            c = data["chunk"] or {}
            cfg.chunk = ChunkCfg(max_chars=int(c.get("max_chars", cfg.chunk.max_chars)))

        if "llm" in data:
            raw = data["llm"] or {}
            d = LlmCfg()
            cfg.llm = LlmCfg(
                model=str(raw.get("model", d.model)),
                api_base=str(raw.get("api_base", d.api_base) or ""),
                max_input_tokens=int(raw.get("max_input_tokens", d.max_input_tokens)),
                max_output_tokens=int(raw.get("max_output_tokens", d.max_output_tokens)),
                temperature=float(raw.get("temperature", d.temperature)),
                json_mode=_as_bool(raw.get("json_mode", d.json_mode)),
                request_timeout_secs=float(
                    raw.get("request_timeout_secs", d.request_timeout_secs)
                ),
                max_elapsed_secs=float(raw.get("max_elapsed_secs", d.max_elapsed_secs)),
                call_timeout_secs=float(raw.get("call_timeout_secs", d.call_timeout_secs)),
                initial_backoff_secs=float(
                    raw.get("initial_backoff_secs", d.initial_backoff_secs)
                ),
                max_backoff_secs=float(raw.get("max_backoff_secs", d.max_backoff_secs)),
                retry_on_decode_error=_as_bool(
                    raw.get("retry_on_decode_error", d.retry_on_decode_error)
                ),
                warmup=_as_bool(raw.get("warmup", d.warmup)),
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: DigestConfig) -> DigestConfig:
    """Apply environment variable overrides (layer 2)."""
    if model := os.environ.get("FORUM_DIGEST_LLM_MODEL") or os.environ.get("LLM_MODEL"):
        cfg.llm.model = model
    if base := os.environ.get("OLLAMA_BASE_URL"):
        cfg.llm.api_base = base
    if url := os.environ.get("FORUM_DIGEST_FORUM_URL"):
        cfg.forum.base_url = url.rstrip("/")
    if secs := os.environ.get("OLLAMA_MAX_ELAPSED_SECS"):
        try:
            cfg.llm.max_elapsed_secs = float(secs)
        except ValueError as exc:
            raise ConfigError(
                f"OLLAMA_MAX_ELAPSED_SECS must be a number of seconds, got '{secs}'"
            ) from exc
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DigestConfig:
    """Load and return a merged *DigestConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *forum-digest.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is malformed or out of range.
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
