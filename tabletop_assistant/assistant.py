"""Explicit wiring of the assistant's components.

Everything the router and commands need lives on one ``AssistantContext``
created by :func:`create_assistant`; there is no module-level state.
"""

import logging
import random
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

from .commands.factory import CommandFactory
from .config import AppConfig
from .conversation import ConversationProvider, WorldInfo
from .entity_store import EntityStore, InMemoryEntityStore
from .llm_client import EchoClient, LLMProvider, create_llm_client
from .permissions import Capability, PermissionRequestResult, PermissionStore
from .router import ChatMessage, CommandRouter, RouteResult, WorldSource
from .services.entity_service import EntityService
from .services.queue import OperationQueue
from .storage import JsonFileSettingsStore, MemorySettingsStore, SettingsStore


@runtime_checkable
class MessageSink(Protocol):
    """Where the assistant's chat responses go."""

    async def send(self, text: str) -> None:
        ...


class CollectingSink:
    """Message sink that keeps every response in a list."""

    def __init__(self):
        self.messages: List[str] = []

    async def send(self, text: str) -> None:
        self.messages.append(text)


class AssistantContext:
    """Owns the permission store, queue, router and their collaborators."""

    def __init__(
        self,
        config: AppConfig,
        permissions: PermissionStore,
        queue: OperationQueue,
        entities: EntityService,
        router: CommandRouter,
        sink: Optional[MessageSink] = None,
    ):
        self.config = config
        self.permissions = permissions
        self.queue = queue
        self.entities = entities
        self.router = router
        self.sink = sink
        self.logger = logging.getLogger(__name__)
        self._closed = False

    async def start(self) -> "AssistantContext":
        """Start the operation queue worker on the running loop."""
        self.queue.start()
        self.logger.info("Assistant started")
        return self

    async def handle_message(
        self, content: str, speaker: str = "unknown", message_type: Optional[str] = None
    ) -> RouteResult:
        """Route one chat message and forward any response to the sink."""
        result = await self.router.route(
            ChatMessage(content=content, speaker=speaker, type=message_type)
        )
        if result.responded and self.sink is not None:
            await self.sink.send(result.response)
        return result

    def approve_permission(
        self, capability: Union[Capability, str], duration: Optional[float] = None, *, actor: str = "gm"
    ) -> None:
        """Game-master approval of a pending request as a temporary grant."""
        self.permissions.grant_temporary(
            capability, duration, auto_granted=False, actor=actor, reason="approved by game master"
        )

    def request_permission(
        self, capability: Union[Capability, str], reason: str = "", *, auto_approve: bool = True
    ) -> PermissionRequestResult:
        return self.permissions.request(capability, reason, auto_approve=auto_approve)

    def stats(self) -> Dict[str, Any]:
        return {
            "permissions": self.permissions.stats(),
            "queue": self.queue.stats().model_dump(),
            "commands": self.router.registry.get_registry_stats(),
            "provider": self.router.provider_name,
            "history": len(self.router.history),
        }

    async def shutdown(self) -> None:
        """Cancel expiry timers and stop the queue worker."""
        if self._closed:
            return
        self._closed = True
        self.permissions.close()
        await self.queue.close()
        self.logger.info("Assistant shut down")

    async def __aenter__(self) -> "AssistantContext":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()


def create_assistant(
    config: Optional[AppConfig] = None,
    *,
    entity_store: Optional[EntityStore] = None,
    settings_store: Optional[SettingsStore] = None,
    message_sink: Optional[MessageSink] = None,
    world: Optional[Union[WorldInfo, WorldSource]] = None,
    providers: Optional[Mapping[str, ConversationProvider]] = None,
    rng: Optional[random.Random] = None,
) -> AssistantContext:
    """Build a fully wired assistant.

    The echo provider is always registered; a provider configured under
    ``llm`` is added and activated when it can be created. Providers passed
    in ``providers`` are registered last, and the first of them is activated.
    """
    config = config or AppConfig()
    logger = logging.getLogger(__name__)

    if settings_store is None:
        if config.settings_file:
            settings_store = JsonFileSettingsStore(config.settings_file)
        else:
            settings_store = MemorySettingsStore()

    permissions = PermissionStore(
        settings_store,
        default_level=config.permissions.default_level,
        history_limit=config.permissions.history_limit,
        default_duration=config.permissions.temporary_duration,
    ).load()

    queue = OperationQueue()
    entities = EntityService(entity_store if entity_store is not None else InMemoryEntityStore(), permissions, queue)

    if world is None:
        world = WorldInfo(**config.world.model_dump())

    router = CommandRouter(permissions, config=config.chat, world=world)
    CommandFactory(permissions, entities, config.chat, rng).install(router)

    router.register_provider(LLMProvider.ECHO.value, EchoClient(config.llm))
    if config.llm.provider or config.llm.openai_api_key or config.llm.anthropic_api_key:
        try:
            llm_client = create_llm_client(config.llm)
            router.register_provider(llm_client.name, llm_client, activate=True)
        except Exception as e:
            logger.warning(f"LLM client initialization failed: {e}")

    for index, (name, provider) in enumerate((providers or {}).items()):
        router.register_provider(name, provider, activate=index == 0)

    return AssistantContext(config, permissions, queue, entities, router, message_sink)
