"""Tests for assistant wiring and the end-to-end message flow."""

import json
import random
from unittest.mock import AsyncMock, Mock

import pytest

from tabletop_assistant.assistant import CollectingSink, create_assistant
from tabletop_assistant.config import AppConfig, LLMConfig, WorldConfig
from tabletop_assistant.conversation import WorldInfo
from tabletop_assistant.permissions import PermissionLevel
from tabletop_assistant.router import RouteKind


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def assistant(entity_store, sink):
    return create_assistant(entity_store=entity_store, message_sink=sink, rng=random.Random(3))


class TestCreateAssistant:
    """Test component wiring."""

    def test_defaults(self, assistant):
        assert assistant.permissions.current_level is PermissionLevel.BASIC
        assert assistant.router.provider_name == "echo"
        assert "roll" in assistant.router.registry
        assert "r" in assistant.router.registry
        assert assistant.router.world.active_scene is None

    def test_world_from_config(self):
        config = AppConfig(world=WorldConfig(active_scene="Crypt", player_count=2, ruleset="dnd5e"))

        assistant = create_assistant(config)

        assert assistant.router.world == WorldInfo(active_scene="Crypt", player_count=2, ruleset="dnd5e")

    def test_failed_llm_init_keeps_echo(self):
        config = AppConfig(llm=LLMConfig(provider="openai"))

        assistant = create_assistant(config)

        assert assistant.router.provider_name == "echo"

    def test_injected_providers(self):
        first = Mock()
        second = Mock()

        assistant = create_assistant(providers={"Local": first, "remote": second})

        assert assistant.router.provider_name == "local"
        assert assistant.router.providers == ["echo", "local", "remote"]

    def test_settings_file(self, tmp_path):
        path = tmp_path / "settings.json"
        config = AppConfig(settings_file=str(path))

        create_assistant(config).permissions.set_level("standard", actor="gm")

        assert json.loads(path.read_text())["permission-level"] == "STANDARD"
        assert create_assistant(config).permissions.current_level is PermissionLevel.STANDARD


class TestMessageFlow:
    """Test messages routed through a started assistant."""

    @pytest.mark.asyncio
    async def test_roll_reaches_sink(self, assistant, sink):
        async with assistant:
            result = await assistant.handle_message("/ai roll 2d6+1 damage", "Alice")

        assert result.kind is RouteKind.COMMAND
        assert sink.messages == [result.response]
        assert result.response.startswith("🎲 2d6+1 → [")
        assert result.response.endswith("(damage)")

    @pytest.mark.asyncio
    async def test_passive_message_sends_nothing(self, assistant, sink):
        async with assistant:
            result = await assistant.handle_message("I sneak past", "Alice", "ic")

        assert result.kind is RouteKind.PASSIVE
        assert sink.messages == []

    @pytest.mark.asyncio
    async def test_mention_uses_echo_provider(self, assistant, sink):
        async with assistant:
            await assistant.handle_message("@ai where am I?", "Alice")

        assert sink.messages == ['You said: "where am I?". This is a simulated response.']

    @pytest.mark.asyncio
    async def test_injected_provider_receives_world(self, entity_store, sink):
        provider = Mock()
        provider.process_message = AsyncMock(return_value="You are in the crypt.")
        assistant = create_assistant(
            entity_store=entity_store,
            message_sink=sink,
            world=lambda: WorldInfo(active_scene="Crypt"),
            providers={"fake": provider},
        )

        async with assistant:
            await assistant.handle_message("@ai where am I?", "Alice")

        _, context = provider.process_message.await_args.args
        assert context.world.active_scene == "Crypt"
        assert sink.messages == ["You are in the crypt."]

    @pytest.mark.asyncio
    async def test_create_after_gm_approval(self, assistant, sink, entity_store):
        async with assistant:
            denied = await assistant.handle_message("/ai create actor Orc Chieftain", "Alice")
            assistant.approve_permission("create-actor", 60)
            created = await assistant.handle_message("/ai create actor Orc Chieftain", "Alice")

        assert denied.kind is RouteKind.DENIED
        assert created.response == '✅ Actor "Orc Chieftain" created successfully'
        assert [actor["name"] for actor in await entity_store.query("actors", {"name": "orc"})] == [
            "Orc Chieftain"
        ]

    @pytest.mark.asyncio
    async def test_config_switches_level(self, assistant, sink):
        async with assistant:
            assistant.permissions.set_level(PermissionLevel.FULL)
            await assistant.handle_message("/ai config permission-level none", "gm")
            result = await assistant.handle_message("/ai roll d20", "gm")

        assert sink.messages[0] == "🔐 Permission level changed to: NONE"
        assert result.kind is RouteKind.DENIED


class TestPermissionsAndStats:
    """Test the host-facing helpers."""

    @pytest.mark.asyncio
    async def test_request_permission_auto_approves_basic(self, assistant):
        async with assistant:
            assistant.permissions.set_level(PermissionLevel.NONE)

            result = assistant.request_permission("roll-dice", "initiative")

            assert result.granted
            assert result.temporary
            assert assistant.permissions.check("roll-dice")

    def test_request_permission_leaves_dangerous_pending(self, assistant):
        result = assistant.request_permission("execute-arbitrary-code")

        assert not result.granted
        assert result.pending

    @pytest.mark.asyncio
    async def test_stats(self, assistant):
        async with assistant:
            await assistant.handle_message("hello", "Alice", "ooc")
            stats = assistant.stats()

        assert stats["permissions"]["current_level"] == "BASIC"
        assert stats["provider"] == "echo"
        assert stats["history"] == 1
        assert stats["commands"]["total_commands"] == 9
        assert stats["queue"]["pending"] == 0

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, assistant):
        await assistant.start()
        assistant.approve_permission("create-scene", 60)

        await assistant.shutdown()
        await assistant.shutdown()

        assert not assistant.queue.is_running
