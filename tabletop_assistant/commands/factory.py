"""Command factory for creating command instances with dependency injection."""

import logging
import random
from typing import TYPE_CHECKING, List, Optional

from .base import BaseCommand
from .builtin import (
    ChatCommand,
    ConfigCommand,
    CreateCommand,
    HelpCommand,
    MacroCommand,
    RollCommand,
    SceneCommand,
    SearchCommand,
    StatusCommand,
)
from .registry import CommandRegistry
from ..config import ChatConfig
from ..permissions import PermissionStore
from ..services.entity_service import EntityService

if TYPE_CHECKING:
    from ..router import CommandRouter


class CommandFactory:
    """Factory for creating the built-in commands with their dependencies."""

    def __init__(
        self,
        permissions: PermissionStore,
        entities: EntityService,
        config: Optional[ChatConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the command factory.

        Args:
            permissions: Permission store consulted by help and config
            entities: Entity service used by the world-editing commands
            config: Chat configuration (prefix and mention token)
            rng: Optional random source for dice rolls
        """
        self.permissions = permissions
        self.entities = entities
        self.config = config or ChatConfig()
        self.rng = rng
        self.logger = logging.getLogger(__name__)

    @property
    def prefix(self) -> str:
        return self.config.command_prefix

    def create_commands(self, router: "CommandRouter") -> List[BaseCommand]:
        """Create every built-in command, in help order."""
        commands = [
            HelpCommand(router.registry, self.permissions, self.prefix, self.config.mention_token),
            StatusCommand(self.permissions, self.entities, router, self.prefix),
            RollCommand(self.prefix, self.rng),
            CreateCommand(self.entities, self.prefix),
            SearchCommand(self.entities, self.prefix),
            MacroCommand(self.entities, self.prefix),
            SceneCommand(self.entities, self.prefix),
            ConfigCommand(router, self.permissions, self.prefix),
            ChatCommand(router, self.prefix),
        ]

        commands[0].add_alias("commands")
        commands[2].add_alias("r")

        return commands

    def install(self, router: "CommandRouter") -> CommandRegistry:
        """Register the built-in commands on ``router``'s registry.

        Returns:
            The router's registry
        """
        registry = router.registry
        for command in self.create_commands(router):
            try:
                registry.register(command)
                self.logger.debug(f"Registered command: {command.name}")
            except ValueError as e:
                self.logger.error(f"Failed to register command {command.name}: {e}")

        self.logger.info(f"Command registry has {len(registry)} commands")
        return registry
