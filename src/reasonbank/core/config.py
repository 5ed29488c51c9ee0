"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (RB_* prefix, ``__`` for nested fields)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - EngineSettings: Pattern lifecycle thresholds consumed by ReasoningBank
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from unittest.mock import patch

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from reasonbank.core.result import ConfigurationError

CONFIG_ENV_VAR = "REASONBANK_CONFIG"


class ConfigError(ConfigurationError):
    """Raised when configuration cannot be loaded or validated."""


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class EngineSettings(BaseModel):
    """Pattern lifecycle settings."""

    dimensions: int = Field(default=384, gt=0, description="Embedding vector dimension.")
    hnsw_ef_search: int = Field(
        default=100, gt=0, description="Search breadth passed to the accelerated index."
    )
    max_short_term: int = Field(
        default=1000, gt=0, description="Short-term patterns loaded from persistence."
    )
    max_long_term: int = Field(
        default=5000, gt=0, description="Long-term patterns loaded from persistence."
    )
    promotion_threshold: int = Field(
        default=3, ge=1, description="Usage count required for promotion."
    )
    quality_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Quality required for promotion."
    )
    dedup_threshold: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Cosine similarity above which two patterns are duplicates.",
    )
    prune_age_hours: float = Field(
        default=24.0, gt=0, description="Age after which rarely used short-term patterns go."
    )
    prune_max_usage: int = Field(
        default=2, ge=1, description="Short-term patterns used fewer times than this are pruned."
    )
    stop_check_limit: int = Field(
        default=10, ge=0, description="Un-consolidated patterns tolerated by the stop hook."
    )


class EmbeddingSettings(BaseModel):
    """Embedding tier configuration."""

    use_semantic_search: bool = Field(
        default=True, description="Try the sentence-transformers model before fallbacks."
    )
    model_name: str = Field(
        default="all-MiniLM-L6-v2", description="Sentence-transformers model name."
    )
    command: list[str] | None = Field(
        default=None,
        description="External embedding generator argv; '{text}' marks the text argument.",
    )
    command_timeout: float = Field(
        default=10.0, gt=0, description="Seconds before the external generator is killed."
    )
    max_input_chars: int = Field(
        default=500, gt=0, description="Characters passed to the external generator."
    )
    cache_key_chars: int = Field(
        default=200, gt=0, description="Prefix length used as the embedding cache key."
    )
    cache_size: int = Field(default=1000, gt=0, description="Entries kept per embedding cache.")


class StorageSettings(BaseModel):
    """Pattern archive configuration."""

    store_path: Path = Field(
        default_factory=lambda: Path.home() / ".reasonbank" / "patterns.jsonl",
        description="JSONL archive holding persisted patterns.",
    )
    persistence_enabled: bool = Field(
        default=True, description="Forward pattern changes to the JSONL archive."
    )


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


def _ensure_parent_directory(path: Path, name: str) -> Path:
    """Ensure parent directory exists for file paths. Raises on failure."""
    expanded = path.expanduser().resolve()
    try:
        expanded.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ValueError(f"Cannot create parent directory for {name} {expanded}: {exc}") from exc
    return expanded


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="RB_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineSettings = Field(default_factory=EngineSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    log_level: str = Field(default="INFO", description="Log level for rb output.")

    @field_validator("storage", mode="after")
    @classmethod
    def ensure_storage_directory(cls, v: StorageSettings) -> StorageSettings:
        """Ensure the archive's parent directory exists when persistence is on."""
        if v.persistence_enabled:
            v.store_path = _ensure_parent_directory(v.store_path, "store_path")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Ensure environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.home() / ".reasonbank.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like RB_ENGINE__DEDUP_THRESHOLD.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "engine": EngineSettings,
        "embedding": EmbeddingSettings,
        "storage": StorageSettings,
    }

    for group_name, model_cls in nested_models.items():
        for field in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{field}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{field}")

    if f"{prefix}LOG_LEVEL".upper() in env_vars:
        overrides.add("log_level")

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = AppConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = AppConfig()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "AppConfig",
    "CONFIG_ENV_VAR",
    "ConfigError",
    "ConfigLoadResult",
    "EmbeddingSettings",
    "EngineSettings",
    "StorageSettings",
    "load_config",
]
