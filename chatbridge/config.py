"""Configuration schema and loading."""

from __future__ import annotations

import json
import math
import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatbridge.errors import ConfigurationError
from chatbridge.log import logger

KNOWN_PROVIDERS: tuple[str, ...] = ("deepseek", "ollama", "openai-compatible")


class ModelSettings(BaseModel):
    """Sampling settings shared by every provider section.

    Non-numeric overrides fall back to the field default instead of failing,
    so a typo in an env var never prevents startup.
    """

    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096
    request_timeout: float = 60.0

    @field_validator("temperature", "max_tokens", "request_timeout", mode="before")
    @classmethod
    def _fallback_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        default = cls.model_fields[info.field_name].default
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        try:
            number = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric {info.field_name}={value!r}, using {default}")
            return default
        if math.isnan(number) or math.isinf(number):
            return default
        return int(number) if info.field_name == "max_tokens" else number

    @field_validator("temperature")
    @classmethod
    def _clamp_temperature(cls, value: float) -> float:
        return min(2.0, max(0.0, value))

    @field_validator("max_tokens")
    @classmethod
    def _positive_max_tokens(cls, value: int) -> int:
        return value if value > 0 else cls.model_fields["max_tokens"].default

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        return value if value > 0 else cls.model_fields["request_timeout"].default


class DeepSeekConfig(ModelSettings):
    model: str = "deepseek-chat"
    api_key: str = ""
    api_base: str = ""


class OllamaConfig(ModelSettings):
    model: str = "llama2"
    base_url: str = "http://localhost:11434"


class OpenAICompatibleConfig(ModelSettings):
    model: str = "local-model"
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "not-needed"


class ProvidersConfig(BaseModel):
    default: str = "deepseek"
    deepseek: DeepSeekConfig = Field(default_factory=DeepSeekConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    openai_compatible: OpenAICompatibleConfig = Field(default_factory=OpenAICompatibleConfig)


class HistoryConfig(BaseModel):
    dir: str = ""  # empty = in-memory only


class MemoryConfig(BaseModel):
    path: str = "~/.chatbridge/memory.db"


class SkillsConfig(BaseModel):
    timeout: float = 30.0
    workspace: str = "~/.chatbridge/workspace"
    database: str = ""
    web_search_api_key: str = ""
    max_search_results: int = 10


class WebConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 3001
    auth_token: str = ""
    cors_origin: str = "*"


class MaintenanceConfig(BaseModel):
    cleanup_cron: str = "*/15 * * * *"  # empty = disabled


class LogConfig(BaseModel):
    level: str = "INFO"
    format: str = ""  # empty = chatbridge.log.DEFAULT_FORMAT
    json_format: bool = False
    file: str = ""
    rotation: str = "10 MB"
    retention: str = "7 days"


class ChatBridgeConfig(BaseSettings):
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    skills: SkillsConfig = Field(default_factory=SkillsConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    model_config = SettingsConfigDict(
        env_prefix="CHATBRIDGE_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):
        # env > dotenv > file (init) > defaults -- environment variables always win
        return (env_settings, dotenv_settings, init_settings, file_secret_settings)


# Conventional variable names -> (section, provider, field). Lower priority than CHATBRIDGE_*.
_CONVENTIONAL_ENV: dict[str, tuple[str, ...]] = {
    "MODEL_PROVIDER": ("providers", "default"),
    "DEEPSEEK_API_KEY": ("providers", "deepseek", "api_key"),
    "DEEPSEEK_MODEL": ("providers", "deepseek", "model"),
    "DEEPSEEK_TEMPERATURE": ("providers", "deepseek", "temperature"),
    "DEEPSEEK_MAX_TOKENS": ("providers", "deepseek", "max_tokens"),
    "OLLAMA_BASE_URL": ("providers", "ollama", "base_url"),
    "OLLAMA_MODEL": ("providers", "ollama", "model"),
    "OPENAI_COMPATIBLE_BASE_URL": ("providers", "openai_compatible", "base_url"),
    "OPENAI_COMPATIBLE_API_KEY": ("providers", "openai_compatible", "api_key"),
    "OPENAI_COMPATIBLE_MODEL": ("providers", "openai_compatible", "model"),
    "LOCAL_MODEL_TEMPERATURE": ("providers", "openai_compatible", "temperature"),
    "LOCAL_MODEL_MAX_TOKENS": ("providers", "openai_compatible", "max_tokens"),
}


def _camel_to_snake(name: str) -> str:
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    return s.lower()


def _convert_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {_camel_to_snake(k): _convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_convert_keys(i) for i in data]
    return data


def _apply_conventional_env(data: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    """Fill values from conventional env names unless the file already set them."""
    for env_name, path in _CONVENTIONAL_ENV.items():
        value = environ.get(env_name)
        if value is None:
            continue
        node = data
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node.setdefault(path[-1], value)
    return data


def load_config(config_path: str | None = None, environ: dict[str, str] | None = None) -> ChatBridgeConfig:
    """Load config from JSON file + environment variables."""
    path = Path(config_path).expanduser() if config_path else _default_config_path()

    file_data: dict[str, Any] = {}
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            file_data = _convert_keys(raw)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable config file {path}: {e}")

    file_data = _apply_conventional_env(file_data, dict(os.environ if environ is None else environ))
    # Pass file data as kwargs so BaseSettings still applies env var overrides
    return ChatBridgeConfig(**file_data)


def _default_config_path() -> Path:
    return Path.home() / ".chatbridge" / "config.json"


def validate_startup(config: ChatBridgeConfig) -> None:
    """Validate config for production startup. Raises ConfigurationError with all errors."""
    errors: list[str] = []

    default = config.providers.default
    if default not in KNOWN_PROVIDERS:
        errors.append(f"providers.default '{default}' is not one of {', '.join(KNOWN_PROVIDERS)}")
    elif default == "deepseek" and not config.providers.deepseek.api_key:
        errors.append("providers.default is 'deepseek' but DEEPSEEK_API_KEY is not set")

    if config.maintenance.cleanup_cron:
        from croniter import croniter
        if not croniter.is_valid(config.maintenance.cleanup_cron):
            errors.append(f"maintenance.cleanup_cron '{config.maintenance.cleanup_cron}' is invalid")

    valid_levels = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
    if config.log.level.upper() not in valid_levels:
        errors.append(f"log.level '{config.log.level}' invalid, must be one of {valid_levels}")

    if errors:
        raise ConfigurationError(
            "ChatBridge configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
        )
