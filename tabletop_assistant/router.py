"""Chat message routing: commands, mentions and passive history."""

import logging
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from .commands.base import CommandContext
from .commands.registry import CommandRegistry
from .config import ChatConfig
from .conversation import (
    ConversationHistory,
    ConversationProvider,
    TurnKind,
    WorldInfo,
    build_context,
)
from .errors import AssistantError, InvalidArgument, ProviderFailure, UnknownCommand
from .permissions import PermissionStore


PASSIVE_MESSAGE_TYPES = ("ic", "ooc")


class ChatMessage(BaseModel):
    """An incoming chat message as seen by the router."""

    model_config = ConfigDict(frozen=True)

    content: str
    speaker: str = "unknown"
    type: Optional[str] = None


class RouteKind(str, Enum):
    """How a message was handled."""

    COMMAND = "command"
    UNKNOWN_COMMAND = "unknown-command"
    DENIED = "denied"
    COMMAND_ERROR = "command-error"
    GREETING = "greeting"
    CONVERSATION = "conversation"
    NO_PROVIDER = "no-provider"
    PROVIDER_FAILURE = "provider-failure"
    PASSIVE = "passive"
    IGNORED = "ignored"


class RouteResult(BaseModel):
    """Outcome of routing one message; ``response`` is sent to chat when set."""

    model_config = ConfigDict(frozen=True)

    kind: RouteKind
    response: Optional[str] = None
    command: Optional[str] = None

    @property
    def responded(self) -> bool:
        return self.response is not None


WorldSource = Callable[[], WorldInfo]


class CommandRouter:
    """Turns chat messages into command dispatches or conversation turns.

    Permission checks happen once per invocation, before the handler runs.
    Nothing raised by a handler or a provider escapes ``route``.
    """

    def __init__(
        self,
        permissions: PermissionStore,
        registry: Optional[CommandRegistry] = None,
        config: Optional[ChatConfig] = None,
        world: Optional[Union[WorldInfo, WorldSource]] = None,
    ):
        self.permissions = permissions
        self.registry = registry if registry is not None else CommandRegistry()
        self.config = config or ChatConfig()
        self.history = ConversationHistory(self.config.history_limit)
        self.logger = logging.getLogger(__name__)

        if isinstance(world, WorldInfo) or world is None:
            snapshot = world or WorldInfo()
            self._world: WorldSource = lambda: snapshot
        else:
            self._world = world

        self._providers: Dict[str, ConversationProvider] = {}
        self._provider_name: Optional[str] = None
        self._mention = self._compile_mention(self.config.mention_token)

    @staticmethod
    def _compile_mention(token: str) -> "re.Pattern[str]":
        pattern = re.escape(token)
        if token[-1].isalnum() or token[-1] == "_":
            pattern += r"\b"
        return re.compile(pattern, re.IGNORECASE)

    @property
    def prefix(self) -> str:
        return self.config.command_prefix

    @property
    def world(self) -> WorldInfo:
        """Current world snapshot."""
        return self._world()

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: ConversationProvider, *, activate: bool = False) -> None:
        """Make ``provider`` selectable under ``name``.

        The first registered provider becomes the active one.
        """
        name = name.strip().lower()
        if not name:
            raise InvalidArgument("Provider name cannot be empty")
        self._providers[name] = provider
        self.logger.debug(f"Registered conversation provider '{name}'")
        if activate or self._provider_name is None:
            self._provider_name = name

    def set_provider(self, name: str) -> None:
        """Switch the active provider.

        Raises:
            InvalidArgument: if no provider is registered under ``name``
        """
        key = name.strip().lower()
        if key not in self._providers:
            available = ", ".join(sorted(self._providers)) or "none"
            raise InvalidArgument(
                f"Unknown provider: {name!r}",
                f'Provider "{name}" not registered. Available: {available}',
            )
        self._provider_name = key
        self.logger.info(f"Conversation provider set to '{key}'")

    @property
    def provider_name(self) -> Optional[str]:
        return self._provider_name

    @property
    def providers(self) -> List[str]:
        return list(self._providers)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _split_command(self, content: str) -> Optional[List[str]]:
        text = content.strip()
        if not text.startswith(self.prefix):
            return None
        remainder = text[len(self.prefix):]
        if remainder and not remainder[0].isspace():
            return None
        return remainder.split()

    async def route(self, message: ChatMessage) -> RouteResult:
        """Route one message. Never raises."""
        parts = self._split_command(message.content)
        if parts is not None:
            return await self._dispatch(message, parts)

        if self.config.respond_to_mentions and self._mention.search(message.content):
            return await self._handle_mention(message)

        if message.type in PASSIVE_MESSAGE_TYPES:
            self.history.add(message.speaker, message.content, TurnKind.ORDINARY)
            return RouteResult(kind=RouteKind.PASSIVE)

        return RouteResult(kind=RouteKind.IGNORED)

    async def _dispatch(self, message: ChatMessage, parts: List[str]) -> RouteResult:
        name = parts[0].lower() if parts else ""
        args = parts[1:]

        command = self.registry.get_command(name) if name else None
        if command is None:
            error = UnknownCommand(name)
            self.logger.info(f"Unknown command from {message.speaker}: {name!r}")
            response = f"❌ {error.user_message}"
            suggestions = self.registry.find_similar_commands(name) if name else []
            if suggestions:
                response += f" Did you mean: {', '.join(suggestions)}?"
            response += f" Use `{self.prefix} help` to see available commands."
            return RouteResult(kind=RouteKind.UNKNOWN_COMMAND, response=response, command=name or None)

        capability = command.required_capability
        if not self.permissions.check(capability):
            self.logger.warning(
                f"Command '{command.name}' denied for {message.speaker}: missing {capability.value}"
            )
            return RouteResult(
                kind=RouteKind.DENIED,
                response=f"❌ Insufficient permission. Required permission: {capability.value}",
                command=command.name,
            )

        if command.records_turn:
            self.history.add(message.speaker, message.content, TurnKind.COMMAND)
        context = CommandContext(
            user_input=message.content,
            args=args,
            speaker=message.speaker,
            message_type=message.type,
        )

        self.logger.info(f"Executing command '{command.name}' for {message.speaker}")
        try:
            command.validate(context)
            response = await command.execute(context)
            if response is not None and not isinstance(response, str):
                self.logger.warning(
                    f"Command '{command.name}' returned {type(response).__name__}, not text"
                )
                response = str(response)
        except AssistantError as e:
            self.logger.warning(f"Command '{command.name}' failed: {e}")
            return RouteResult(
                kind=RouteKind.COMMAND_ERROR, response=f"❌ {e.user_message}", command=command.name
            )
        except Exception as e:
            self.logger.exception(f"Command '{command.name}' raised: {e}")
            return RouteResult(
                kind=RouteKind.COMMAND_ERROR,
                response=f"❌ Error executing command {command.name}.",
                command=command.name,
            )

        return RouteResult(kind=RouteKind.COMMAND, response=response, command=command.name)

    async def _handle_mention(self, message: ChatMessage) -> RouteResult:
        text = " ".join(self._mention.sub(" ", message.content).split())
        if not text:
            return RouteResult(
                kind=RouteKind.GREETING,
                response=(
                    f"👋 Hello {message.speaker}! How can I help? "
                    f"Use `{self.prefix} help` to see available commands."
                ),
            )
        return await self._converse(text, message.speaker)

    async def converse(self, text: str, speaker: str) -> str:
        """Free-text conversation; returns the text to send to chat."""
        return (await self._converse(text, speaker)).response

    async def _converse(self, text: str, speaker: str) -> RouteResult:
        provider = self._providers.get(self._provider_name) if self._provider_name else None
        if provider is None:
            return RouteResult(
                kind=RouteKind.NO_PROVIDER,
                response=(
                    "❌ No AI provider configured. "
                    f"Use `{self.prefix} config provider <name>` to configure one."
                ),
            )

        context = build_context(self.history, speaker, self._world(), self.config.context_turns)
        try:
            reply = await provider.process_message(text, context)
            if not isinstance(reply, str) or not reply.strip():
                raise ProviderFailure("Provider returned an empty response", self._provider_name)
        except Exception as e:
            failure = e if isinstance(e, ProviderFailure) else ProviderFailure(str(e), self._provider_name)
            self.logger.error(f"Conversation provider '{self._provider_name}' failed: {e}")
            return RouteResult(kind=RouteKind.PROVIDER_FAILURE, response=f"❌ {failure.user_message}")

        self.history.add(speaker, text, TurnKind.ORDINARY)
        self.history.add("AI Assistant", reply, TurnKind.MENTION_REPLY)
        return RouteResult(kind=RouteKind.CONVERSATION, response=reply)
