"""Tests for the tiered permission store."""

import asyncio

import pytest

from tabletop_assistant.errors import InsufficientPermission, InvalidArgument, UnknownLevel
from tabletop_assistant.permissions import (
    Capability,
    HistoryKind,
    PermissionLevel,
    PermissionStore,
    level_capabilities,
)
from tabletop_assistant.storage import MemorySettingsStore


class TestCapability:
    """Test capability name parsing."""

    @pytest.mark.parametrize(
        "name",
        ["create-actor", "createActor", "create_actor", "CREATE_ACTOR", Capability.CREATE_ACTOR],
    )
    def test_parse_spellings(self, name):
        assert Capability.parse(name) is Capability.CREATE_ACTOR

    def test_parse_aliases(self):
        assert Capability.parse("accessFileSystem") is Capability.FILESYSTEM_ACCESS
        assert Capability.parse("queryJournals") is Capability.QUERY_JOURNAL

    @pytest.mark.parametrize("name", ["", "   ", "fly-to-moon"])
    def test_parse_rejects_unknown(self, name):
        with pytest.raises(InvalidArgument):
            Capability.parse(name)


class TestLevels:
    """Test tier contents and level changes."""

    def test_tiers_are_cumulative(self):
        previous = set()
        for level in PermissionLevel:
            current = set(level_capabilities(level))
            assert previous <= current
            previous = current

    def test_tier_contents(self):
        basic = level_capabilities("BASIC")
        assert Capability.ROLL_DICE in basic
        assert Capability.CREATE_ITEM not in basic
        assert Capability.CREATE_ITEM in level_capabilities("STANDARD")
        assert Capability.CREATE_ACTOR not in level_capabilities("STANDARD")
        assert Capability.CREATE_ACTOR in level_capabilities("ADVANCED")
        assert Capability.MODIFY_PERMISSIONS in level_capabilities("FULL")
        assert level_capabilities("NONE") == {}
        assert len(level_capabilities("FULL")) == len(Capability)

    def test_load_applies_default_level(self, permissions):
        assert permissions.current_level is PermissionLevel.BASIC
        assert permissions.check("send-message")
        assert not permissions.check("create-actor")

    def test_set_level_replaces_grants(self, permissions):
        permissions.grant("create-actor", force=True)
        permissions.set_level("standard", actor="gm")

        assert permissions.current_level is PermissionLevel.STANDARD
        assert permissions.check("create-item")
        # Custom permanent grant is wiped by the level change
        assert not permissions.check("create-actor")

        entry = permissions.history()[-1]
        assert entry.kind is HistoryKind.LEVEL
        assert entry.capability is None
        assert entry.previous_value == "BASIC"
        assert entry.new_value == "STANDARD"
        assert entry.actor == "gm"

    def test_set_level_keeps_temporary_grants(self, permissions):
        permissions.grant_temporary("create-actor", 60)
        permissions.set_level("NONE")

        assert permissions.check("create-actor")
        assert not permissions.check("send-message")

    def test_set_unknown_level(self, permissions):
        with pytest.raises(UnknownLevel) as exc_info:
            permissions.set_level("SUPREME")
        assert exc_info.value.level == "SUPREME"
        assert permissions.current_level is PermissionLevel.BASIC

    def test_available_levels(self, permissions):
        levels = permissions.available_levels()
        assert [info.key for info in levels] == ["NONE", "BASIC", "STANDARD", "ADVANCED", "FULL"]
        assert [info.rank for info in levels] == [0, 1, 2, 3, 4]


class TestCheck:
    """Test capability checks."""

    def test_unknown_capability_is_denied(self, full_permissions):
        assert full_permissions.check("fly-to-moon") is False
        assert full_permissions.check("") is False

    def test_camel_case_check(self, permissions):
        assert permissions.check("rollDice") is True

    def test_unloaded_store_denies_everything(self):
        store = PermissionStore(MemorySettingsStore())
        assert store.check("send-message") is False


class TestGrant:
    """Test permanent and temporary grants."""

    def test_grant_requires_modify_permissions(self, permissions):
        with pytest.raises(InsufficientPermission) as exc_info:
            permissions.grant("create-actor")
        assert exc_info.value.capability == "modify-permissions"
        assert not permissions.check("create-actor")
        assert permissions.history() == []

    def test_grant_with_modify_permissions(self, full_permissions):
        full_permissions.revoke("create-actor", reason="testing")
        assert not full_permissions.check("create-actor")

        entry = full_permissions.history()[-1]
        assert entry.kind is HistoryKind.GRANT
        assert entry.capability is Capability.CREATE_ACTOR
        assert entry.previous_value is True
        assert entry.new_value is False
        assert entry.reason == "testing"
        assert entry.temporary is False

    def test_forced_grant(self, permissions):
        permissions.grant("createActor", force=True, actor="gm")
        assert permissions.check("create-actor")
        assert permissions.history()[-1].previous_value is None

    def test_grant_validates_arguments(self, full_permissions):
        with pytest.raises(InvalidArgument):
            full_permissions.grant("")
        with pytest.raises(InvalidArgument):
            full_permissions.grant("fly-to-moon")
        with pytest.raises(InvalidArgument):
            full_permissions.grant("create-actor", temporary=0)
        with pytest.raises(InvalidArgument):
            full_permissions.grant("create-actor", temporary=-5)

    def test_invalid_arguments_checked_before_permission(self, permissions):
        with pytest.raises(InvalidArgument):
            permissions.grant("fly-to-moon")

    def test_temporary_grant_expires_lazily(self, settings, clock):
        store = PermissionStore(settings, clock=clock).load()
        store.grant_temporary("create-actor", 10)

        assert store.check("create-actor")
        clock.advance(9.9)
        assert store.check("create-actor")
        clock.advance(0.1)
        assert not store.check("create-actor")
        assert store.stats()["temporary_permissions"] == 0

    def test_temporary_grant_shadows_permanent(self, settings, clock):
        store = PermissionStore(settings, clock=clock).load()
        assert store.check("roll-dice")

        store.grant_temporary("roll-dice", 30, value=False)
        assert not store.check("roll-dice")

        clock.advance(31)
        assert store.check("roll-dice")

    def test_temporary_grant_replaces_previous(self, settings, clock):
        store = PermissionStore(settings, clock=clock).load()
        store.grant_temporary("create-actor", 5)
        store.grant_temporary("create-actor", 60)

        clock.advance(10)
        assert store.check("create-actor")
        assert len([g for g in store.active_grants() if g.type == "temporary"]) == 1

    def test_temporary_grants_are_not_persisted(self, settings):
        store = PermissionStore(settings).load()
        store.grant_temporary("create-actor", 60)

        reloaded = PermissionStore(settings).load()
        assert not reloaded.check("create-actor")

    @pytest.mark.asyncio
    async def test_temporary_grant_scenario(self, permissions):
        permissions.grant_temporary("createActor", 0.1)
        assert permissions.check("create-actor") is True

        await asyncio.sleep(0.15)
        assert permissions.check("create-actor") is False

    @pytest.mark.asyncio
    async def test_expiry_timer_removes_grant(self, permissions):
        permissions.grant_temporary("create-actor", 0.05)
        assert Capability.CREATE_ACTOR in permissions._timers

        await asyncio.sleep(0.1)
        assert Capability.CREATE_ACTOR not in permissions._temporary
        assert Capability.CREATE_ACTOR not in permissions._timers

    @pytest.mark.asyncio
    async def test_close_cancels_timers(self, permissions):
        permissions.grant_temporary("create-actor", 30)
        handle = permissions._timers[Capability.CREATE_ACTOR]

        permissions.close()
        assert handle.cancelled()
        assert permissions._timers == {}


class TestHistory:
    """Test the bounded change history."""

    def test_history_is_bounded(self, settings):
        store = PermissionStore(settings, history_limit=3).load()
        for level in ["NONE", "BASIC", "STANDARD", "ADVANCED", "FULL"]:
            store.set_level(level)

        history = store.history()
        assert len(history) == 3
        assert [entry.new_value for entry in history] == ["STANDARD", "ADVANCED", "FULL"]

    def test_history_limit(self, full_permissions):
        for capability in ["create-actor", "create-item", "create-scene"]:
            full_permissions.revoke(capability)

        last_two = full_permissions.history(2)
        assert [entry.capability for entry in last_two] == [
            Capability.CREATE_ITEM,
            Capability.CREATE_SCENE,
        ]
        assert full_permissions.history(0) == []

    def test_default_limit_keeps_latest_fifty(self, settings, full_permissions):
        capabilities = ["create-actor", "roll-dice", "query-journal"]
        for i in range(60):
            full_permissions.grant(capabilities[i % 3], i % 2 == 0, reason=f"grant {i}")

        expected = [f"grant {i}" for i in range(10, 60)]
        history = full_permissions.history(50)
        assert len(history) == 50
        assert [entry.reason for entry in history] == expected
        assert [entry.reason for entry in full_permissions.history(100)] == expected

        reloaded = PermissionStore(settings).load()
        assert [entry.reason for entry in reloaded.history()] == expected

    def test_history_entries_are_frozen(self, full_permissions):
        full_permissions.revoke("create-actor")
        entry = full_permissions.history()[-1]
        with pytest.raises(Exception):
            entry.actor = "someone else"


class TestValidationAndRequests:
    """Test advisory validation and permission requests."""

    @pytest.mark.parametrize(
        "capability",
        [
            "delete-any-document",
            "execute-arbitrary-code",
            "modify-settings",
            "manage-users",
            "filesystem-access",
            "network-access",
        ],
    )
    def test_dangerous_capabilities_need_approval(self, full_permissions, capability):
        result = full_permissions.validate(capability)
        assert result.valid is False
        assert result.requires_manual_approval is True
        # Advisory only
        assert full_permissions.check(capability) is True

    def test_ordinary_capability_is_valid(self, permissions):
        result = permissions.validate("create-item")
        assert result.valid is True
        assert result.requires_manual_approval is False

    def test_unknown_capability_is_invalid(self, permissions):
        result = permissions.validate("fly-to-moon")
        assert result.valid is False
        assert result.requires_manual_approval is False

    def test_request_already_granted(self, permissions):
        result = permissions.request("roll-dice")
        assert result.granted is True
        assert result.temporary is False

    def test_request_auto_approves_basic_capability(self, settings):
        store = PermissionStore(settings).load()
        store.set_level("NONE")

        result = store.request("query-actors", "look up NPC", auto_approve=True, duration=60)
        assert result.granted is True
        assert result.temporary is True
        assert store.check("query-actors")
        assert store.history()[-1].temporary is True

    def test_request_goes_pending(self, permissions):
        result = permissions.request("create-actor", "spawn goblins", auto_approve=True)
        assert result.granted is False
        assert result.pending is True
        assert not permissions.check("create-actor")


class TestPersistence:
    """Test loading and saving through the settings store."""

    def test_level_and_grants_persist(self, settings):
        store = PermissionStore(settings).load()
        store.set_level("STANDARD")
        store.grant("create-actor", force=True)

        assert settings.get(PermissionStore.LEVEL_KEY) == "STANDARD"
        assert settings.get(PermissionStore.GRANTS_KEY)["create-actor"] is True

        reloaded = PermissionStore(settings).load()
        assert reloaded.current_level is PermissionLevel.STANDARD
        assert reloaded.check("create-actor")
        assert len(reloaded.history()) == 2

    def test_unknown_stored_values_are_ignored(self):
        settings = MemorySettingsStore(
            {
                PermissionStore.LEVEL_KEY: "GODMODE",
                PermissionStore.GRANTS_KEY: {"fly-to-moon": True, "create-actor": True},
            }
        )
        store = PermissionStore(settings).load()
        assert store.current_level is PermissionLevel.BASIC
        assert store.check("create-actor")
        assert not store.check("fly-to-moon")

    def test_reset(self, full_permissions):
        full_permissions.grant_temporary("create-actor", 60)
        full_permissions.reset()

        assert full_permissions.current_level is PermissionLevel.BASIC
        assert not full_permissions.check("modify-permissions")
        assert full_permissions.stats()["temporary_permissions"] == 0
        assert len(full_permissions.history()) == 1

    def test_constructor_validation(self):
        with pytest.raises(InvalidArgument):
            PermissionStore(history_limit=0)
        with pytest.raises(InvalidArgument):
            PermissionStore(default_duration=0)
        with pytest.raises(UnknownLevel):
            PermissionStore(default_level="SUPREME")
