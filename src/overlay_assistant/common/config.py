"""Runtime settings: YAML file first, then OVERLAY_ASSISTANT_* environment overrides."""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from overlay_assistant.common.errors import ConfigurationError

LOGGER = logging.getLogger("overlay.config")

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent"
ENV_PREFIX = "OVERLAY_ASSISTANT_"
DEFAULT_CONFIG_PATH = "configs/assistant.yaml"


class Settings(BaseModel):
    endpoint: str = GEMINI_ENDPOINT
    request_timeout: float = Field(30.0, gt=0)
    resource_timeout: float = Field(300.0, gt=0)
    max_retries: int = Field(3, ge=0)
    history_size: int = Field(5, ge=1)
    prompt_config: Optional[str] = None
    keyring_service: str = "com.overlay-assistant.apikey"
    keyring_account: str = "gemini-api-key"
    log_level: str = "INFO"


def load_cfg(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name in Settings.model_fields:
        value = os.getenv(ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    return overrides


def load_settings(path: str | Path | None = DEFAULT_CONFIG_PATH) -> Settings:
    """
    Build settings from an optional YAML file and the environment.

    Args:
        path: YAML config path. A missing file means defaults.

    Raises:
        ConfigurationError: If the file cannot be parsed or a value is invalid.
    """
    data: dict[str, Any] = {}
    if path is not None and Path(path).exists():
        try:
            data = load_cfg(str(path))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config {path} must be a mapping")
    elif path is not None:
        LOGGER.info("No config at %s; using defaults", path)

    data.update(_env_overrides())
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
