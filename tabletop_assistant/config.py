"""Configuration management for the Tabletop AI Assistant."""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, Union
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
import logging

import yaml

from .permissions import PermissionLevel


class ChatConfig(BaseModel):
    """Configuration for chat command routing."""

    command_prefix: str = Field(default="/ai", description="Prefix that marks an assistant command")
    mention_token: str = Field(default="@ai", description="Token that addresses the assistant in free text")
    respond_to_mentions: bool = Field(default=True, description="Route mentions to the conversation provider")
    history_limit: int = Field(default=100, description="Maximum conversation turns retained")
    context_turns: int = Field(default=10, description="Turns handed to the provider per message")

    @field_validator('command_prefix', 'mention_token')
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate that prefix and mention tokens are single words."""
        v = v.strip()
        if not v:
            raise ValueError("Token cannot be empty")
        if any(ch.isspace() for ch in v):
            raise ValueError(f"Token cannot contain whitespace: {v!r}")
        return v

    @field_validator('history_limit', 'context_turns')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate buffer sizes are positive and reasonable."""
        if v <= 0:
            raise ValueError("Value must be positive")
        if v > 10000:
            raise ValueError("Value should not exceed 10000")
        return v


class PermissionConfig(BaseModel):
    """Configuration for the permission store."""

    default_level: str = Field(default="BASIC", description="Level applied when nothing is persisted")
    history_limit: int = Field(default=50, description="Permission history entries retained")
    temporary_duration: float = Field(default=300.0, description="Default temporary grant duration in seconds")

    @field_validator('default_level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate that the default level is a known tier."""
        v = v.strip().upper()
        if v not in PermissionLevel.__members__:
            raise ValueError(
                f"Unknown permission level {v!r}; expected one of {', '.join(PermissionLevel.__members__)}"
            )
        return v

    @field_validator('history_limit')
    @classmethod
    def validate_history_limit(cls, v: int) -> int:
        """Validate history size."""
        if v <= 0:
            raise ValueError("history_limit must be positive")
        return v

    @field_validator('temporary_duration')
    @classmethod
    def validate_duration(cls, v: float) -> float:
        """Validate the default temporary grant duration."""
        if v <= 0:
            raise ValueError("temporary_duration must be positive")
        return v


class LLMConfig(BaseModel):
    """Configuration for the conversation provider."""

    provider: Optional[str] = Field(None, description="Provider name (openai, anthropic, echo)")
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key")
    default_model: str = Field(default="gpt-4o-mini", description="Default LLM model")
    max_tokens: int = Field(default=2000, description="Maximum tokens per response")
    temperature: float = Field(default=0.7, description="Sampling temperature")

    @field_validator('temperature')
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature range."""
        if v < 0 or v > 2:
            raise ValueError("temperature must be between 0 and 2")
        return v


class WorldConfig(BaseModel):
    """Static world metadata used when the host supplies none."""

    active_scene: Optional[str] = Field(None, description="Name of the active scene")
    player_count: int = Field(default=0, description="Number of connected players")
    ruleset: Optional[str] = Field(None, description="Game system name")


class AppConfig(BaseModel):
    """Main application configuration."""

    chat: ChatConfig = Field(default_factory=ChatConfig)
    permissions: PermissionConfig = Field(default_factory=PermissionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    world: WorldConfig = Field(default_factory=WorldConfig)
    settings_file: Optional[str] = Field(None, description="JSON file used to persist permission state")
    log_level: str = Field(default="INFO", description="Logging level")


def load_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load configuration from a file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger = logging.getLogger(__name__)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}

            elif config_path.suffix.lower() == '.json':
                return json.load(f) or {}

            else:
                raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    except Exception as e:
        logger.error(f"Failed to load config file {config_path}: {e}")
        raise


def find_config_file() -> Optional[Path]:
    """Find configuration file in standard locations."""
    search_paths = [
        Path.cwd() / ".tabletop-assistant.yaml",
        Path.cwd() / ".tabletop-assistant.yml",
        Path.cwd() / ".tabletop-assistant.json",
        Path.home() / ".config" / "tabletop-assistant" / "config.yaml",
        Path.home() / ".config" / "tabletop-assistant" / "config.yml",
        Path.home() / ".config" / "tabletop-assistant" / "config.json",
    ]

    for config_path in search_paths:
        if config_path.exists():
            return config_path

    return None


def merge_config(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge configuration dictionaries with override taking precedence."""
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value

    return merged


def _remove_none_values(d):
    if isinstance(d, dict):
        return {k: _remove_none_values(v) for k, v in d.items() if v is not None}
    return d


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def load_config(config_file: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load configuration from multiple sources with priority order.

    Priority (highest to lowest):
    1. Environment variables
    2. Specified config file (if provided)
    3. Auto-discovered config file
    4. Default values
    """
    logger = logging.getLogger(__name__)

    config_data: Dict[str, Any] = {}

    if config_file:
        config_path = Path(config_file)
        if config_path.exists():
            config_data = load_config_file(config_path)
            logger.info(f"Loaded configuration from: {config_path}")
        else:
            raise FileNotFoundError(f"Specified config file not found: {config_path}")
    else:
        config_path = find_config_file()
        if config_path:
            config_data = load_config_file(config_path)
            logger.info(f"Auto-discovered configuration file: {config_path}")

    load_dotenv()

    env_config = {
        "chat": {
            "command_prefix": os.getenv("TABLETOP_COMMAND_PREFIX"),
            "mention_token": os.getenv("TABLETOP_MENTION_TOKEN"),
            "respond_to_mentions": os.getenv("TABLETOP_RESPOND_TO_MENTIONS"),
            "history_limit": os.getenv("TABLETOP_HISTORY_LIMIT"),
        },
        "permissions": {
            "default_level": os.getenv("TABLETOP_PERMISSION_LEVEL"),
        },
        "llm": {
            "provider": os.getenv("TABLETOP_LLM_PROVIDER"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
            "default_model": os.getenv("DEFAULT_MODEL"),
        },
        "settings_file": os.getenv("TABLETOP_SETTINGS_FILE"),
        "log_level": os.getenv("LOG_LEVEL"),
    }

    final_config = merge_config(config_data, _remove_none_values(env_config))

    chat_data = dict(final_config.get("chat", {}))
    if "respond_to_mentions" in chat_data:
        chat_data["respond_to_mentions"] = _parse_bool(chat_data["respond_to_mentions"])

    return AppConfig(
        chat=ChatConfig(**chat_data),
        permissions=PermissionConfig(**final_config.get("permissions", {})),
        llm=LLMConfig(**final_config.get("llm", {})),
        world=WorldConfig(**final_config.get("world", {})),
        settings_file=final_config.get("settings_file"),
        log_level=final_config.get("log_level", "INFO"),
    )
