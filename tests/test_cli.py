"""Unit tests for CLI interface."""

import json

import pytest
from unittest.mock import patch
from click.testing import CliRunner

from tabletop_assistant.cli import cli
from tabletop_assistant.config import AppConfig, ChatConfig


@pytest.fixture
def runner():
    """Create Click test runner."""
    return CliRunner()


@pytest.fixture
def mock_config():
    return AppConfig(chat=ChatConfig(command_prefix="/ai"))


@pytest.fixture
def world_file(tmp_path):
    path = tmp_path / "world.json"
    path.write_text(json.dumps({
        "actors": [{"id": "goblin-1", "name": "Goblin Scout", "type": "npc", "level": 1}],
        "scenes": [{"id": "tavern", "name": "Golden Boar Tavern", "active": True}],
    }))
    return str(path)


class TestCLIInitialization:
    """Test CLI initialization and setup."""

    @patch('tabletop_assistant.cli.load_config')
    def test_config_error_exits(self, mock_load_config, runner):
        mock_load_config.side_effect = FileNotFoundError("Specified config file not found: nope.yaml")

        result = runner.invoke(cli, ['--config', 'nope.yaml', 'levels'])

        assert result.exit_code == 1
        assert "Specified config file not found" in result.output

    @patch('tabletop_assistant.cli.load_config')
    def test_config_file_passed_through(self, mock_load_config, runner, mock_config):
        mock_load_config.return_value = mock_config

        result = runner.invoke(cli, ['--config', 'custom.yaml', 'levels'])

        assert result.exit_code == 0
        mock_load_config.assert_called_once_with(config_file='custom.yaml')

    def test_help(self, runner):
        result = runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert "send" in result.output
        assert "chat" in result.output


class TestCLICommands:
    """Test the CLI subcommands."""

    @patch('tabletop_assistant.cli.load_config')
    def test_levels(self, mock_load_config, runner, mock_config):
        mock_load_config.return_value = mock_config

        result = runner.invoke(cli, ['levels'])

        assert result.exit_code == 0
        assert "BASIC     Basic (12 capabilities)" in result.output
        assert "FULL      Full (49 capabilities)" in result.output

    @patch('tabletop_assistant.cli.load_config')
    def test_send_roll(self, mock_load_config, runner, mock_config):
        mock_load_config.return_value = mock_config

        result = runner.invoke(cli, ['send', '/ai roll 1d20+2 perception', '--speaker', 'Alice'])

        assert result.exit_code == 0
        assert "🎲 d20+2 → [" in result.output
        assert "(perception)" in result.output

    @patch('tabletop_assistant.cli.load_config')
    def test_send_denied_then_level(self, mock_load_config, runner, mock_config, world_file):
        mock_load_config.return_value = mock_config

        denied = runner.invoke(cli, ['send', '/ai create actor Orc', '--world', world_file])
        allowed = runner.invoke(
            cli, ['send', '/ai create actor Orc', '--world', world_file, '--level', 'advanced']
        )

        assert "Insufficient permission. Required permission: create-actor" in denied.output
        assert allowed.exit_code == 0
        assert '✅ Actor "Orc" created successfully' in allowed.output

    @patch('tabletop_assistant.cli.load_config')
    def test_send_search_world(self, mock_load_config, runner, mock_config, world_file):
        mock_load_config.return_value = mock_config

        result = runner.invoke(cli, ['send', '/ai search actor goblin', '--world', world_file])

        assert result.exit_code == 0
        assert "Goblin Scout" in result.output

    @patch('tabletop_assistant.cli.load_config')
    def test_send_passive(self, mock_load_config, runner, mock_config):
        mock_load_config.return_value = mock_config

        result = runner.invoke(cli, ['send', 'I hide behind the bar', '--type', 'ic'])

        assert result.exit_code == 0
        assert "(no response: passive)" in result.output

    @patch('tabletop_assistant.cli.load_config')
    def test_chat_session(self, mock_load_config, runner, mock_config):
        mock_load_config.return_value = mock_config

        result = runner.invoke(
            cli,
            ['chat', '--speaker', 'Bob'],
            input="@ai hello there\n/ai nonsense\nquit\n",
        )

        assert result.exit_code == 0
        assert 'You said: "hello there". This is a simulated response.' in result.output
        assert 'Command "nonsense" not recognized.' in result.output
        assert "👋 Goodbye!" in result.output

    @patch('tabletop_assistant.cli.load_config')
    def test_chat_ends_on_eof(self, mock_load_config, runner, mock_config):
        mock_load_config.return_value = mock_config

        result = runner.invoke(cli, ['chat'], input="")

        assert result.exit_code == 0
        assert "👋 Goodbye!" in result.output
