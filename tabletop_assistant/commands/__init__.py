"""Chat command system for the Tabletop AI Assistant.

- BaseCommand: Abstract interface for all commands
- FunctionCommand: Command wrapping a plain async handler
- CommandContext: Input context for command execution
- CommandRegistry: Registration and discovery of commands
- CommandFactory: Dependency injection for the built-in commands
"""

from .base import BaseCommand, CommandCategory, CommandContext, FunctionCommand
from .registry import CommandRegistry
from .factory import CommandFactory

__all__ = [
    'BaseCommand',
    'CommandCategory',
    'CommandContext',
    'FunctionCommand',
    'CommandRegistry',
    'CommandFactory',
]
