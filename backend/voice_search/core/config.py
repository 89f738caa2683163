"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "VSRCH_"
DEFAULT_CONFIG_PATH = Path("~/.config/voice-search/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "records_dir"): "records_dir",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("search", "rrf_k"): "rrf_k",
    ("search", "limit"): "default_limit",
    ("search", "candidate_multiplier"): "candidate_multiplier",
    ("search", "min_score"): "min_score",
    ("chunking", "target_tokens"): "chunk_target_tokens",
    ("chunking", "max_tokens"): "chunk_max_tokens",
    ("chunking", "min_tokens"): "chunk_min_tokens",
    ("chunking", "overlap_tokens"): "chunk_overlap_tokens",
    ("watch", "enabled"): "watch_records",
    ("watch", "sync_on_startup"): "sync_on_startup",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".voice-search" / "index.db")
    records_dir: Path = Field(default=Path.home() / ".voice-search" / "records")
    embedding_model: str = "hashed"
    embedding_dim: int = Field(default=256, gt=0)
    rrf_k: int = Field(default=60, gt=0)
    default_limit: int = Field(default=20, gt=0)
    candidate_multiplier: int = Field(default=2, ge=1)
    min_score: float = Field(default=0.0, ge=0.0, le=1.0)
    chunk_target_tokens: int = Field(default=200, gt=0)
    chunk_max_tokens: int = Field(default=256, gt=0)
    chunk_min_tokens: int = Field(default=80, ge=0)
    chunk_overlap_tokens: int = Field(default=20, ge=0)
    watch_records: bool = False
    sync_on_startup: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "records_dir", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("paths must be a path or string")

    @model_validator(mode="after")
    def _check_chunk_budget(self) -> "Settings":
        if self.chunk_min_tokens > self.chunk_max_tokens:
            raise ValueError("chunk_min_tokens must not exceed chunk_max_tokens")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with VSRCH_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "ENV_PREFIX"]
