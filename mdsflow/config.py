from __future__ import annotations

import logging
import os
from typing import Any, Iterable, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_CHECKPOINT_INTERVAL,
    DEFAULT_LOOP_LIMIT_FACTOR,
    DEFAULT_PROJECT_ID,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_MS,
)


class StoreConfig(BaseModel):
    """State store location. ``None`` selects the in-memory store."""

    url: Optional[str] = None


class EngineConfig(BaseModel):
    """Tuning knobs for the workflow engine."""

    checkpoint_interval: int = Field(default=DEFAULT_CHECKPOINT_INTERVAL, ge=1)
    loop_limit_factor: int = Field(default=DEFAULT_LOOP_LIMIT_FACTOR, ge=1)
    default_retry_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1)
    default_retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    allow_halted_resume: bool = False


class MdsflowConfig(BaseModel):
    """Top-level configuration model."""

    log_level: str = "INFO"
    project_id: str = DEFAULT_PROJECT_ID
    project_root: str = "."
    output_folder: str = "docs"
    store: StoreConfig = Field(default_factory=StoreConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    variables: dict[str, Any] = Field(default_factory=dict)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge recursively."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: str) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def _apply_env(config: MdsflowConfig) -> MdsflowConfig:
    env_store_url = os.getenv("MDSFLOW_STORE_URL")
    if env_store_url:
        config.store.url = env_store_url
    return config


def load_config(path: Optional[str] = None) -> MdsflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MDSFLOW_CONFIG env
            variable or 'mdsflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("MDSFLOW_CONFIG", "mdsflow.yaml")
    if os.path.exists(config_path):
        config = MdsflowConfig(**_read_yaml(config_path))
    else:
        config = MdsflowConfig()
    return _apply_env(config)


def load_config_hierarchy(paths: Iterable[str]) -> MdsflowConfig:
    """Merge several config files, later files taking precedence.

    The usual order is core defaults, then module config, then the client's
    project config. Missing files are skipped.
    """

    merged: dict[str, Any] = {}
    for path in paths:
        if os.path.exists(path):
            merged = deep_merge(merged, _read_yaml(path))
    return _apply_env(MdsflowConfig(**merged))


def configure_logging(level: str) -> None:
    """Configure root logging for CLI use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
