"""Built-in chat commands."""

import json
import logging
import random
from typing import TYPE_CHECKING, Any, Dict, Optional

from .base import BaseCommand, CommandCategory, CommandContext
from .registry import CommandRegistry
from ..dice import parse_dice, roll_dice
from ..errors import InvalidArgument
from ..permissions import Capability, PermissionStore
from ..services.entity_service import EntityService

if TYPE_CHECKING:
    from ..router import CommandRouter


def parse_entity_data(text: str) -> Dict[str, Any]:
    """Parse ``text`` as a JSON object, falling back to ``{"name": text}``."""
    try:
        data = json.loads(text)
    except ValueError:
        return {"name": text}
    if not isinstance(data, dict):
        return {"name": text}
    return data


class BuiltinCommand(BaseCommand):
    """Base class for the assistant's own commands."""

    usage_args: str = ""

    def __init__(self, prefix: str = "/ai"):
        super().__init__()
        self.prefix = prefix
        self.logger = logging.getLogger(__name__)

    @property
    def usage(self) -> str:
        usage = f"{self.prefix} {self.name}"
        return f"{usage} {self.usage_args}" if self.usage_args else usage


class HelpCommand(BuiltinCommand):
    """Lists the commands the assistant may currently run."""

    usage_args = "[command]"

    def __init__(
        self,
        registry: CommandRegistry,
        permissions: PermissionStore,
        prefix: str = "/ai",
        mention_token: str = "@ai",
    ):
        super().__init__(prefix)
        self.registry = registry
        self.permissions = permissions
        self.mention_token = mention_token

    @property
    def name(self) -> str:
        return "help"

    @property
    def description(self) -> str:
        return "Show available commands"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.UTILITY

    @property
    def required_capability(self) -> Capability:
        return Capability.SEND_MESSAGE

    async def execute(self, context: CommandContext) -> str:
        if context.args:
            command_name = context.args[0].lower()
            command = self.registry.get_command(command_name)
            if command is None:
                return f'❌ Command "{command_name}" not found.'
            return f"📖 Help: {command.name}\n{command.get_help_text()}"

        lines = ["🤖 **AI Assistant - Available Commands**"]
        for command in self.registry.list_commands():
            if self.permissions.check(command.required_capability):
                lines.append(f"• **{command.name}** - {command.description}")
        lines.append("")
        lines.append(f"Use `{self.prefix} help <command>` for details on a command.")
        lines.append(f"You can also mention me with {self.mention_token} to chat freely!")
        return "\n".join(lines)


class StatusCommand(BuiltinCommand):
    """Reports permission, queue and world collection state."""

    def __init__(
        self,
        permissions: PermissionStore,
        entities: EntityService,
        router: "CommandRouter",
        prefix: str = "/ai",
    ):
        super().__init__(prefix)
        self.permissions = permissions
        self.entities = entities
        self.router = router

    @property
    def name(self) -> str:
        return "status"

    @property
    def description(self) -> str:
        return "Show assistant status"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.UTILITY

    @property
    def required_capability(self) -> Capability:
        return Capability.SEND_MESSAGE

    async def execute(self, context: CommandContext) -> str:
        permission_stats = self.permissions.stats()
        queue_stats = self.entities.queue.stats()
        counts = await self.entities.counts()

        return "\n".join([
            "🔍 **AI Assistant Status**",
            "🔐 Permissions",
            f"  Current level: {permission_stats['current_level']}",
            f"  Active permissions: {permission_stats['active_permissions']}",
            f"  Temporary permissions: {permission_stats['temporary_permissions']}",
            "⚙️ Operation queue",
            f"  Pending: {queue_stats.pending}",
            f"  Processing: {'yes' if queue_stats.processing else 'no'}",
            f"  Processed: {queue_stats.processed} (failed: {queue_stats.failed})",
            "🤖 Conversation",
            f"  Provider: {self.router.provider_name or 'none'}",
            f"  Remembered turns: {len(self.router.history)}",
            "🎲 World collections",
            f"  Actors: {counts.get('actors', 0)}",
            f"  Items: {counts.get('items', 0)}",
            f"  Scenes: {counts.get('scenes', 0)}",
            f"  Journals: {counts.get('journals', 0)}",
        ])


class RollCommand(BuiltinCommand):
    """Rolls dice in NdS+M notation."""

    usage_args = "<formula> [reason]"
    min_args = 1

    def __init__(self, prefix: str = "/ai", rng: Optional[random.Random] = None):
        super().__init__(prefix)
        self.rng = rng

    @property
    def name(self) -> str:
        return "roll"

    @property
    def description(self) -> str:
        return "Roll dice"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.DICE

    @property
    def required_capability(self) -> Capability:
        return Capability.ROLL_DICE

    async def execute(self, context: CommandContext) -> str:
        formula = context.args[0]
        reason = context.rest(1)

        expression = parse_dice(formula)
        if expression is None:
            raise InvalidArgument(
                f"Invalid dice formula: {formula}",
                f"Invalid dice formula: {formula}. Example: `{self.prefix} roll 1d20+5 Perception`",
            )

        result = roll_dice(expression, self.rng)
        self.logger.debug(f"Rolled {result.format_summary()}")
        suffix = f" ({reason})" if reason else ""
        return f"🎲 {result.format_summary()}{suffix}"


class CreateCommand(BuiltinCommand):
    """Creates a world entity from JSON or a bare name."""

    usage_args = "<type> <data>"
    min_args = 2

    def __init__(self, entities: EntityService, prefix: str = "/ai"):
        super().__init__(prefix)
        self.entities = entities

    @property
    def name(self) -> str:
        return "create"

    @property
    def description(self) -> str:
        return "Create an actor, item, scene, journal or macro"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.ENTITY

    @property
    def required_capability(self) -> Capability:
        return Capability.CREATE_ACTOR

    async def execute(self, context: CommandContext) -> str:
        entity_type = context.args[0].lower()
        data = parse_entity_data(context.rest(1))

        result = await self.entities.create(entity_type, data)
        if result.success:
            return f"✅ {result.message}"
        return f"❌ {result.message}"


class SearchCommand(BuiltinCommand):
    """Searches a collection by name."""

    usage_args = "<type> [term]"
    min_args = 1

    def __init__(self, entities: EntityService, prefix: str = "/ai"):
        super().__init__(prefix)
        self.entities = entities

    @property
    def name(self) -> str:
        return "search"

    @property
    def description(self) -> str:
        return "Search actors, items, scenes, journals or macros"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.ENTITY

    @property
    def required_capability(self) -> Capability:
        return Capability.QUERY_ACTORS

    @staticmethod
    def _describe(entity: Dict[str, Any]) -> str:
        line = f"• **{entity.get('name', entity.get('id'))}**"
        if entity.get("type"):
            line += f" ({entity['type']})"
        if entity.get("level") is not None:
            line += f" - Level {entity['level']}"
        return line

    async def execute(self, context: CommandContext) -> str:
        entity_type = context.args[0].lower()
        result = await self.entities.search(entity_type, context.rest(1))
        if not result.success:
            return f"❌ {result.message}"
        if not result.data:
            return "🔍 No results found."

        lines = [f"🔍 **Found {len(result.data)} result(s):**"]
        lines.extend(self._describe(entity) for entity in result.data)
        return "\n".join(lines)


class MacroCommand(BuiltinCommand):
    """Executes a stored macro by name or id."""

    usage_args = "<name> [args]"
    min_args = 1

    def __init__(self, entities: EntityService, prefix: str = "/ai"):
        super().__init__(prefix)
        self.entities = entities

    @property
    def name(self) -> str:
        return "macro"

    @property
    def description(self) -> str:
        return "Execute a macro"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.MACRO

    @property
    def required_capability(self) -> Capability:
        return Capability.EXECUTE_MACRO

    async def execute(self, context: CommandContext) -> str:
        result = await self.entities.execute_macro(context.args[0], context.args[1:])
        if not result.success:
            return f"❌ {result.message}"
        outcome = result.data.get("result")
        if outcome is None:
            return f"⚙️ {result.message}"
        return f"⚙️ {result.message}: {outcome}"


class SceneCommand(BuiltinCommand):
    """Activates, creates or lists scenes."""

    usage_args = "<activate|create|list> [name]"
    min_args = 1
    ACTIONS = ("activate", "create", "list")

    def __init__(self, entities: EntityService, prefix: str = "/ai"):
        super().__init__(prefix)
        self.entities = entities

    @property
    def name(self) -> str:
        return "scene"

    @property
    def description(self) -> str:
        return "Manage scenes"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.SCENE

    @property
    def required_capability(self) -> Capability:
        return Capability.CREATE_SCENE

    async def execute(self, context: CommandContext) -> str:
        action = context.args[0].lower()
        target = context.rest(1)

        if action == "list":
            result = await self.entities.search("scenes")
            if not result.success:
                return f"❌ {result.message}"
            if not result.data:
                return "🎬 No scenes available."
            lines = ["🎬 **Available scenes:**"]
            for scene in result.data:
                marker = " (active)" if scene.get("active") else ""
                lines.append(f"• {scene.get('name', scene.get('id'))}{marker}")
            return "\n".join(lines)

        if action not in self.ACTIONS:
            return f'❌ Action "{action}" not recognized. Valid actions: {", ".join(self.ACTIONS)}'

        if not target:
            raise InvalidArgument(
                f"scene {action} requires a name", f"Usage: `{self.prefix} scene {action} <name>`"
            )

        if action == "activate":
            result = await self.entities.activate_scene(target)
            return f"🎬 {result.message}" if result.success else f"❌ {result.message}"

        result = await self.entities.create("scenes", {"name": target})
        return f"✅ {result.message}" if result.success else f"❌ {result.message}"


class ConfigCommand(BuiltinCommand):
    """Changes the active provider or the permission level."""

    usage_args = "<option> <value>"
    min_args = 2
    OPTIONS = ("provider", "permission-level")

    def __init__(self, router: "CommandRouter", permissions: PermissionStore, prefix: str = "/ai"):
        super().__init__(prefix)
        self.router = router
        self.permissions = permissions

    @property
    def name(self) -> str:
        return "config"

    @property
    def description(self) -> str:
        return "Change assistant settings"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.UTILITY

    @property
    def required_capability(self) -> Capability:
        return Capability.MODIFY_SETTINGS

    async def execute(self, context: CommandContext) -> str:
        option = context.args[0].lower()
        value = context.rest(1)

        if option == "provider":
            self.router.set_provider(value)
            return f"⚙️ AI provider changed to: {value}"

        if option == "permission-level":
            self.permissions.set_level(value.upper(), actor=context.speaker, reason="chat command")
            return f"🔐 Permission level changed to: {value.upper()}"

        return f'❌ Option "{option}" not recognized. Options: {", ".join(self.OPTIONS)}'


class ChatCommand(BuiltinCommand):
    """Sends free text to the conversation provider."""

    usage_args = "<message>"
    min_args = 1
    records_turn = False

    def __init__(self, router: "CommandRouter", prefix: str = "/ai"):
        super().__init__(prefix)
        self.router = router

    @property
    def name(self) -> str:
        return "chat"

    @property
    def description(self) -> str:
        return "Talk with the AI"

    @property
    def category(self) -> CommandCategory:
        return CommandCategory.CHAT

    @property
    def required_capability(self) -> Capability:
        return Capability.SEND_MESSAGE

    async def execute(self, context: CommandContext) -> str:
        return await self.router.converse(context.rest(), context.speaker)
