"""Configuration loading for the assistant runtime.

Layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable ASSISTANT_RUNTIME_CONFIG
3. Fallback to "config/default.yaml"

Environment variables prefixed ``ASSISTANT_RUNTIME__`` override single keys,
e.g. ``ASSISTANT_RUNTIME__SESSION__TIMEOUT_HOURS=12``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

CONFIG_ENV_VAR = "ASSISTANT_RUNTIME_CONFIG"
ENV_PREFIX = "ASSISTANT_RUNTIME__"
DEFAULT_CONFIG_PATH = "config/default.yaml"


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    service_name: str = "assistant-runtime"


class SessionSettings(BaseModel):
    timeout_hours: float = 24
    cleanup_interval_minutes: float = 60
    max_messages: int = 50


class MemorySettings(BaseModel):
    max_per_session: int = 100
    injection_limit: int = 5


class ModelSettings(BaseModel):
    name: str = "claude-sonnet-4-20250514"
    provider: str = "anthropic"
    temperature: float = 0.2
    recursion_limit: int = 25


class ServiceSettings(BaseModel):
    """Base URLs of the external collaborators"""
    memory_url: Optional[str] = None
    mail_url: Optional[str] = None
    tasks_url: Optional[str] = None
    assistant_url: str = "http://127.0.0.1:8000"
    timeout_seconds: float = 30.0


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    model: ModelSettings = Field(default_factory=ModelSettings)
    services: ServiceSettings = Field(default_factory=ServiceSettings)


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix ASSISTANT_RUNTIME__."""
    environ = os.environ if environ is None else environ
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g. ASSISTANT_RUNTIME__SERVICES__MEMORY_URL -> cfg["services"]["memory_url"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def load_settings(path: str | None = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """Load and validate YAML configuration.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``ASSISTANT_RUNTIME_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.
    environ : dict | None
        Environment mapping used for overrides; defaults to ``os.environ``.

    Returns
    -------
    Settings
        Validated settings with environment overrides applied. A missing
        file yields defaults; a malformed file raises ``RuntimeError``.
    """
    env = os.environ if environ is None else environ
    if path is None:
        path = env.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    cfg: Dict[str, Any] = {}
    if not path_obj.exists():
        logger.warning("Config file not found, using defaults", path=str(path_obj))
    else:
        with path_obj.open("r", encoding="utf-8") as f:
            try:
                cfg = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

        if not isinstance(cfg, dict):
            raise RuntimeError(f"Invalid config format in {path_obj}, expected mapping.")

    return Settings.model_validate(_apply_env_overrides(cfg, env))
