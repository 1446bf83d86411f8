"""Configuration management for comicizer.

Provider URLs, models, prompts and polling policy live in one pydantic
model that is passed explicitly to the orchestrator. Nothing reads
process-wide settings at call time.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from comicizer.constants import (
    CHAT_COMPLETIONS_PATH,
    CONFIG_FILENAME,
    CRSAI_CHAT_PATH,
    DEFAULT_ANALYSIS_TEMPERATURE,
    DEFAULT_APP_REFERER,
    DEFAULT_APP_TITLE,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_CRSAI_BASE_URL,
    DEFAULT_CRSAI_IMAGE_MODEL,
    DEFAULT_CRSAI_TEXT_MODEL,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_IMAGE_TEMPERATURE,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_RETENTION,
    DEFAULT_LOG_ROTATION,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_OPENROUTER_IMAGE_MODEL,
    DEFAULT_OPENROUTER_TEXT_MODEL,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PLANNING_TEMPERATURE,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_POLL_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_USER_DIR,
    PROVIDER_CRSAI,
    PROVIDER_OPENROUTER,
)
from comicizer.errors import ConfigError

ProviderName = Literal["openrouter", "crsai"]


class EnvVarNotFoundError(ValueError):
    """Raised when an environment variable referenced by env: syntax is not found."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name
        super().__init__(f"Environment variable not found: {var_name}")


def resolve_env_value(value: str, strict: bool = True) -> str | None:
    """Resolve env:VAR_NAME syntax to actual environment variable value.

    Args:
        value: The value to resolve. An "env:" prefix reads the environment.
        strict: If True, raises EnvVarNotFoundError when variable not found.
                If False, returns None when variable not found.

    Returns:
        The resolved value, or None if env var not found and strict=False.

    Raises:
        EnvVarNotFoundError: If strict=True and environment variable not found.
    """
    if isinstance(value, str) and value.startswith("env:"):
        env_var = value[4:]
        env_value = os.environ.get(env_var)
        if env_value is None:
            if strict:
                raise EnvVarNotFoundError(env_var)
            return None
        return env_value
    return value


class ProviderConfig(BaseModel):
    """Connection settings for one AI provider."""

    base_url: str
    api_key: str | None = None  # Supports env: syntax
    text_model: str
    image_model: str
    chat_path: str = CHAT_COMPLETIONS_PATH
    referer: str | None = None  # OpenRouter attribution headers
    title: str | None = None

    def get_resolved_api_key(self, strict: bool = False) -> str | None:
        """Get API key with env: syntax resolved.

        Args:
            strict: If True, raises EnvVarNotFoundError when env var not found.
                    If False (default), returns None when env var not found.

        Returns:
            The resolved API key, or None if not configured or env var not found.
        """
        if self.api_key:
            return resolve_env_value(self.api_key, strict=strict)
        return None


def _default_openrouter() -> ProviderConfig:
    return ProviderConfig(
        base_url=DEFAULT_OPENROUTER_BASE_URL,
        text_model=DEFAULT_OPENROUTER_TEXT_MODEL,
        image_model=DEFAULT_OPENROUTER_IMAGE_MODEL,
        referer=DEFAULT_APP_REFERER,
        title=DEFAULT_APP_TITLE,
    )


def _default_crsai() -> ProviderConfig:
    return ProviderConfig(
        base_url=DEFAULT_CRSAI_BASE_URL,
        text_model=DEFAULT_CRSAI_TEXT_MODEL,
        image_model=DEFAULT_CRSAI_IMAGE_MODEL,
        chat_path=CRSAI_CHAT_PATH,
    )


class PollingConfig(BaseModel):
    """Async image job polling policy."""

    interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    max_attempts: int = Field(default=DEFAULT_POLL_MAX_ATTEMPTS, ge=1)


class GenerationConfig(BaseModel):
    """Sampling and image parameters."""

    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    image_size: str = DEFAULT_IMAGE_SIZE
    analysis_temperature: float = DEFAULT_ANALYSIS_TEMPERATURE
    planning_temperature: float = DEFAULT_PLANNING_TEMPERATURE
    image_temperature: float = DEFAULT_IMAGE_TEMPERATURE


class PromptsConfig(BaseModel):
    """Prompt overrides. None means use the built-in prompt."""

    analysis_system: str | None = None
    analysis_user: str | None = None
    planning_system: str | None = None
    planning_user: str | None = None
    image_prefix: str | None = None


class LogConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = DEFAULT_LOG_LEVEL
    dir: str | None = DEFAULT_LOG_DIR
    rotation: str = DEFAULT_LOG_ROTATION
    retention: str = DEFAULT_LOG_RETENTION


class ComicizerConfig(BaseModel):
    """Main configuration model."""

    openrouter: ProviderConfig = Field(default_factory=_default_openrouter)
    crsai: ProviderConfig = Field(default_factory=_default_crsai)
    text_provider: ProviderName = PROVIDER_OPENROUTER
    image_provider: ProviderName = PROVIDER_OPENROUTER
    polling: PollingConfig = Field(default_factory=PollingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    output_dir: str = DEFAULT_OUTPUT_DIR
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)

    def provider(self, name: str) -> ProviderConfig:
        """Return the settings of provider ``name``."""
        if name == PROVIDER_OPENROUTER:
            return self.openrouter
        if name == PROVIDER_CRSAI:
            return self.crsai
        raise ConfigError(f"Unknown provider: {name}")


def _deep_update(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Deep merge updates into base dict, preserving base structure."""
    result = base.copy()
    for key, value in updates.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = value
    return result


class ConfigManager:
    """Configuration manager for loading and merging configs."""

    CONFIG_FILENAME = CONFIG_FILENAME
    DEFAULT_USER_CONFIG_DIR = Path(DEFAULT_USER_DIR).expanduser()

    def __init__(self) -> None:
        self._config: ComicizerConfig | None = None
        self._config_path: Path | None = None

    @property
    def config(self) -> ComicizerConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    @property
    def config_path(self) -> Path | None:
        """Get the path of the loaded configuration file."""
        return self._config_path

    def load(
        self,
        config_path: Path | str | None = None,
        env_override: bool = True,
    ) -> ComicizerConfig:
        """
        Load configuration from file with fallback chain.

        Priority (highest to lowest):
        1. Explicit config_path parameter
        2. COMICIZER_CONFIG environment variable
        3. ./comicizer.json (current directory)
        4. ~/.comicizer/config.json (user directory)
        5. Default values

        Raises:
            ConfigError: If the file cannot be read or fails validation
        """
        config_data: dict[str, Any] = {}

        resolved_path = self._resolve_config_path(config_path, env_override)
        if resolved_path and resolved_path.exists():
            # Partial provider sections override the defaults field by field
            config_data = _deep_update(
                ComicizerConfig().model_dump(), self._load_json(resolved_path)
            )
            self._config_path = resolved_path

        try:
            self._config = ComicizerConfig.model_validate(config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {resolved_path}: {e}") from e
        return self._config

    def _resolve_config_path(
        self,
        config_path: Path | str | None,
        env_override: bool,
    ) -> Path | None:
        """Resolve configuration file path based on priority."""
        if config_path:
            return Path(config_path)

        if env_override:
            env_path = os.environ.get("COMICIZER_CONFIG")
            if env_path:
                return Path(env_path)

        cwd_config = Path.cwd() / self.CONFIG_FILENAME
        if cwd_config.exists():
            return cwd_config

        user_config = self.DEFAULT_USER_CONFIG_DIR / "config.json"
        if user_config.exists():
            return user_config

        return None

    def _load_json(self, path: Path) -> dict[str, Any]:
        """Load JSON configuration file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {path} must contain a JSON object")
        return data

    def merge(self, updates: dict[str, Any]) -> ComicizerConfig:
        """Deep-merge ``updates`` (e.g. CLI flags) into the current config."""
        merged = _deep_update(self.config.model_dump(), updates)
        try:
            self._config = ComicizerConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration override: {e}") from e
        return self._config


__all__ = [
    "ComicizerConfig",
    "ConfigManager",
    "EnvVarNotFoundError",
    "GenerationConfig",
    "LogConfig",
    "PollingConfig",
    "PromptsConfig",
    "ProviderConfig",
    "resolve_env_value",
]
