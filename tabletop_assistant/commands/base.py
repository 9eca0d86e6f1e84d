"""Base command interfaces and data structures."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union
from enum import Enum

from ..errors import InvalidArgument
from ..permissions import Capability


class CommandCategory(Enum):
    """Categories for organizing commands."""

    CHAT = "chat"
    DICE = "dice"
    ENTITY = "entity"
    SCENE = "scene"
    MACRO = "macro"
    UTILITY = "utility"


@dataclass
class CommandContext:
    """Context information for command execution."""

    user_input: str
    args: List[str] = field(default_factory=list)
    speaker: str = "unknown"
    message_type: Optional[str] = None

    def get_arg(self, index: int, default: Optional[str] = None) -> Optional[str]:
        """Get a positional argument with optional default."""
        if 0 <= index < len(self.args):
            return self.args[index]
        return default

    def rest(self, start: int = 0) -> str:
        """Join the arguments from ``start`` onward with single spaces."""
        return " ".join(self.args[start:])


class BaseCommand(ABC):
    """Abstract base class for all chat commands.

    A command is immutable once registered; its capability is checked by
    the router before ``execute`` is awaited.
    """

    min_args: int = 0
    # Whether the router adds the invocation to conversation history
    records_turn: bool = True

    def __init__(self):
        self._aliases: List[str] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Command name identifier."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable command description."""
        pass

    @property
    @abstractmethod
    def category(self) -> CommandCategory:
        """Command category for organization."""
        pass

    @property
    @abstractmethod
    def required_capability(self) -> Capability:
        """Capability that must be granted for the command to run."""
        pass

    @property
    @abstractmethod
    def usage(self) -> str:
        """Usage line shown on bad arguments and in help."""
        pass

    @property
    def aliases(self) -> List[str]:
        """Alternative names for this command."""
        return self._aliases

    def add_alias(self, alias: str) -> "BaseCommand":
        """Add an alias for this command."""
        if alias not in self._aliases:
            self._aliases.append(alias)
        return self

    def validate(self, context: CommandContext) -> None:
        """Check arguments before execution.

        Raises:
            InvalidArgument: with the usage line when arguments are missing
        """
        if len(context.args) < self.min_args:
            raise InvalidArgument(
                f"{self.name} expects at least {self.min_args} argument(s)",
                f"Usage: `{self.usage}`",
            )

    @abstractmethod
    async def execute(self, context: CommandContext) -> str:
        """Execute the command and return the chat response."""
        pass

    def get_help_text(self) -> str:
        """Generate help text for this command."""
        help_text = f"**{self.name}** - {self.description}\n"
        help_text += f"**Usage:** `{self.usage}`\n"
        help_text += f"**Required permission:** {self.required_capability.value}\n"

        if self.aliases:
            help_text += f"**Aliases:** {', '.join(self.aliases)}\n"

        return help_text

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', category='{self.category.value}')"


CommandHandler = Callable[[List[str]], Awaitable[str]]


class FunctionCommand(BaseCommand):
    """Command backed by a plain ``async (args) -> str`` handler."""

    def __init__(
        self,
        name: str,
        required_capability: Union[Capability, str],
        usage: str,
        handler: CommandHandler,
        description: str = "",
        category: CommandCategory = CommandCategory.UTILITY,
    ):
        super().__init__()
        if not name or not name.strip():
            raise InvalidArgument("Command name cannot be empty")
        if not callable(handler):
            raise InvalidArgument(f"Handler for {name!r} is not callable")
        self._name = name.strip().lower()
        self._capability = Capability.parse(required_capability)
        self._usage = usage
        self._handler = handler
        self._description = description
        self._category = category

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def category(self) -> CommandCategory:
        return self._category

    @property
    def required_capability(self) -> Capability:
        return self._capability

    @property
    def usage(self) -> str:
        return self._usage

    async def execute(self, context: CommandContext) -> str:
        return await self._handler(list(context.args))
