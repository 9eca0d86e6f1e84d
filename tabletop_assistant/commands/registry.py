"""Command registry for managing available chat commands."""

import logging
from typing import Dict, List, Optional, Set, Union
from collections import defaultdict

from .base import BaseCommand, CommandCategory, CommandHandler, FunctionCommand
from ..permissions import Capability


class CommandRegistry:
    """Registry for managing available commands."""

    def __init__(self):
        self._commands: Dict[str, BaseCommand] = {}
        self._aliases: Dict[str, str] = {}
        self._categories: Dict[CommandCategory, List[str]] = defaultdict(list)
        self.logger = logging.getLogger(__name__)

    def register(
        self, command: BaseCommand, aliases: Optional[List[str]] = None
    ) -> "CommandRegistry":
        """Register a command with optional aliases.

        Args:
            command: Command instance to register
            aliases: Optional list of command aliases

        Returns:
            Self for method chaining

        Raises:
            ValueError: If the name or an alias conflicts with an existing
                registration, or the required capability is not a known one
        """
        if not isinstance(command.required_capability, Capability):
            raise ValueError(
                f"Command '{command.name}' requires unknown capability {command.required_capability!r}"
            )

        if command.name in self._commands:
            raise ValueError(f"Command '{command.name}' is already registered")

        if command.name in self._aliases:
            raise ValueError(
                f"Command name '{command.name}' conflicts with existing alias"
            )

        all_aliases = (aliases or []) + list(command.aliases)
        for alias in all_aliases:
            if alias in self._commands:
                raise ValueError(
                    f"Alias '{alias}' conflicts with existing command name"
                )
            if alias in self._aliases:
                raise ValueError(f"Alias '{alias}' is already registered")

        self._commands[command.name] = command
        self._categories[command.category].append(command.name)

        for alias in all_aliases:
            self._aliases[alias] = command.name

        self.logger.debug(
            f"Registered command '{command.name}' ({command.required_capability.value}) "
            f"with {len(all_aliases)} aliases"
        )
        return self

    def register_handler(
        self,
        name: str,
        required_capability: Union[Capability, str],
        usage: str,
        handler: CommandHandler,
        description: str = "",
        category: CommandCategory = CommandCategory.UTILITY,
    ) -> BaseCommand:
        """Wrap an ``async (args) -> str`` handler and register it.

        Raises:
            InvalidArgument: for an empty name or an unknown capability
            ValueError: on a name conflict
        """
        command = FunctionCommand(name, required_capability, usage, handler, description, category)
        self.register(command)
        return command

    def get_command(self, name: str) -> Optional[BaseCommand]:
        """Get command by name or alias."""
        if name in self._commands:
            return self._commands[name]

        if name in self._aliases:
            return self._commands[self._aliases[name]]

        return None

    def has_command(self, name: str) -> bool:
        """Check if command exists by name or alias."""
        return name in self._commands or name in self._aliases

    def list_commands(
        self, category: Optional[CommandCategory] = None
    ) -> List[BaseCommand]:
        """List all registered commands in registration order, optionally by category."""
        if category is None:
            return list(self._commands.values())

        command_names = self._categories.get(category, [])
        return [self._commands[name] for name in command_names]

    def get_command_names_and_aliases(self) -> Set[str]:
        return set(self._commands.keys()) | set(self._aliases.keys())

    def find_similar_commands(self, name: str, max_suggestions: int = 3) -> List[str]:
        """Find commands with similar names for suggestions.

        Names starting with ``name`` come first, then names containing it.
        """
        name_lower = name.lower()
        all_names = sorted(self.get_command_names_and_aliases())

        containing = [cmd for cmd in all_names if name_lower in cmd.lower()]
        starting = [cmd for cmd in all_names if cmd.lower().startswith(name_lower)]

        suggestions = list(dict.fromkeys(starting + containing))

        return suggestions[:max_suggestions]

    def get_categories(self) -> List[CommandCategory]:
        return [category for category, commands in self._categories.items() if commands]

    def get_registry_stats(self) -> Dict[str, int]:
        stats = {
            "total_commands": len(self._commands),
            "total_aliases": len(self._aliases),
            "categories": len(self.get_categories()),
        }
        for category in CommandCategory:
            stats[f"{category.value}_commands"] = len(self._categories.get(category, []))
        return stats

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: str) -> bool:
        return self.has_command(name)

    def __repr__(self) -> str:
        stats = self.get_registry_stats()
        return f"CommandRegistry(commands={stats['total_commands']}, aliases={stats['total_aliases']})"
