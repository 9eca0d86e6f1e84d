"""Tests for configuration loading."""

import json
import os

import pytest
import yaml
from pydantic import ValidationError

from tabletop_assistant.config import (
    AppConfig,
    ChatConfig,
    LLMConfig,
    PermissionConfig,
    find_config_file,
    load_config,
    load_config_file,
    merge_config,
)


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch):
    """Run with an empty working directory and home so nothing is auto-discovered."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    return tmp_path


class TestConfigModels:
    """Test model defaults and validation."""

    def test_defaults(self):
        config = AppConfig()

        assert config.chat.command_prefix == "/ai"
        assert config.chat.mention_token == "@ai"
        assert config.chat.respond_to_mentions is True
        assert config.permissions.default_level == "BASIC"
        assert config.llm.provider is None
        assert config.settings_file is None

    def test_tokens_are_single_words(self):
        assert ChatConfig(command_prefix="  !gm ").command_prefix == "!gm"
        with pytest.raises(ValidationError):
            ChatConfig(command_prefix="/ai please")
        with pytest.raises(ValidationError):
            ChatConfig(mention_token="  ")

    def test_buffer_sizes(self):
        with pytest.raises(ValidationError):
            ChatConfig(history_limit=0)
        with pytest.raises(ValidationError):
            ChatConfig(context_turns=20000)

    def test_default_level_normalized(self):
        assert PermissionConfig(default_level="standard").default_level == "STANDARD"
        with pytest.raises(ValidationError):
            PermissionConfig(default_level="godmode")

    def test_temperature_range(self):
        with pytest.raises(ValidationError):
            LLMConfig(temperature=2.5)


class TestConfigFiles:
    """Test file loading and merging."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"chat": {"command_prefix": "!gm"}}))

        assert load_config_file(path) == {"chat": {"command_prefix": "!gm"}}

    def test_load_empty_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("")

        assert load_config_file(path) == {}

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[chat]")

        with pytest.raises(ValueError, match="Unsupported config file format"):
            load_config_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "nope.yaml")

    def test_merge_is_deep(self):
        merged = merge_config(
            {"chat": {"command_prefix": "/ai", "history_limit": 50}, "log_level": "INFO"},
            {"chat": {"history_limit": 10}},
        )

        assert merged == {"chat": {"command_prefix": "/ai", "history_limit": 10}, "log_level": "INFO"}

    def test_find_config_file(self, isolated_cwd):
        assert find_config_file() is None

        path = isolated_cwd / ".tabletop-assistant.json"
        path.write_text("{}")
        assert find_config_file() == path


class TestLoadConfig:
    """Test layered configuration loading."""

    def test_defaults_without_sources(self, isolated_cwd):
        assert load_config() == AppConfig()

    def test_specified_file(self, isolated_cwd):
        path = isolated_cwd / "custom.json"
        path.write_text(json.dumps({
            "chat": {"mention_token": "@gm", "respond_to_mentions": "no"},
            "permissions": {"default_level": "advanced"},
            "world": {"active_scene": "Crypt", "player_count": 4},
        }))

        config = load_config(path)

        assert config.chat.mention_token == "@gm"
        assert config.chat.respond_to_mentions is False
        assert config.permissions.default_level == "ADVANCED"
        assert config.world.active_scene == "Crypt"

    def test_specified_file_missing(self, isolated_cwd):
        with pytest.raises(FileNotFoundError):
            load_config(isolated_cwd / "missing.yaml")

    def test_environment_overrides_file(self, isolated_cwd):
        (isolated_cwd / ".tabletop-assistant.yaml").write_text(
            yaml.safe_dump({"chat": {"command_prefix": "!gm"}, "llm": {"provider": "openai"}})
        )
        os.environ["TABLETOP_COMMAND_PREFIX"] = "/bot"
        os.environ["TABLETOP_LLM_PROVIDER"] = "echo"
        os.environ["ANTHROPIC_API_KEY"] = "key"
        os.environ["TABLETOP_RESPOND_TO_MENTIONS"] = "false"

        config = load_config()

        assert config.chat.command_prefix == "/bot"
        assert config.chat.respond_to_mentions is False
        assert config.llm.provider == "echo"
        assert config.llm.anthropic_api_key == "key"

    def test_invalid_values_raise(self, isolated_cwd):
        os.environ["TABLETOP_PERMISSION_LEVEL"] = "godmode"

        with pytest.raises(ValidationError):
            load_config()
