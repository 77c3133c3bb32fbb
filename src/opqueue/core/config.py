"""Queue configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (OPQUEUE_* prefix)
    - Default values

Key components:
    - QueueConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
    - get_config(): Cached process-wide configuration
"""

from __future__ import annotations

import json
import logging
import os
import threading
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any
from unittest.mock import patch

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from opqueue.core.result import ConfigurationError

CONFIG_ENV_VAR = "OPQUEUE_CONFIG"

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What happens to dependants when a predecessor fails or is cancelled."""

    RUN_DEPENDENTS = "run_dependents"
    CANCEL_DEPENDENTS = "cancel_dependents"


class QueueConfig(BaseSettings):
    """Process-wide defaults for task queues and the shared worker pool."""

    model_config = SettingsConfigDict(
        env_prefix="OPQUEUE_",
        extra="ignore",
    )

    default_max_concurrency: int = Field(
        default=4, description="Concurrency limit for queues built without an explicit one."
    )
    default_name: str = Field(
        default="opqueue.default", description="Name for queues built without an explicit one."
    )
    pool_workers: int = Field(
        default=32, description="Thread count of the shared worker pool."
    )
    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.RUN_DEPENDENTS,
        description="Whether a failed or cancelled predecessor cancels its dependants.",
    )
    log_level: str = Field(default="INFO", description="Log level for opqueue output.")

    @field_validator("default_max_concurrency", "pool_workers")
    @classmethod
    def ensure_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than 0")
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
        # Environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.home() / ".opqueue.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    parser = json.loads if path.suffix.lower() == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Syntax error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root in {path} must be a mapping.")

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    prefix = QueueConfig.model_config.get("env_prefix", "")
    return {
        field for field in QueueConfig.model_fields if f"{prefix}{field}".upper() in env_vars
    }


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[QueueConfig, ConfigLoadResult]:
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
    except ConfigurationError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = QueueConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = QueueConfig.model_construct()

    return config, ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )


_config: QueueConfig | None = None
_config_lock = threading.Lock()


def get_config() -> QueueConfig:
    """Return the process-wide config, loading it on first access."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config, meta = load_config()
                if meta.error:
                    logger.warning(
                        "Invalid config at %s, using defaults: %s", meta.path, meta.error
                    )
    return _config


def reset_config() -> None:
    """Drop the cached config (primarily for testing)."""
    global _config
    with _config_lock:
        _config = None


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigLoadResult",
    "FailurePolicy",
    "QueueConfig",
    "get_config",
    "load_config",
    "reset_config",
]
