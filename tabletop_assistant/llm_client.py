"""LLM-backed conversation providers for free-text mentions."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

try:
    import openai
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False

try:
    import anthropic
    ANTHROPIC_AVAILABLE = True
except ImportError:
    ANTHROPIC_AVAILABLE = False

from .config import LLMConfig
from .conversation import ConversationContext, TurnKind, WorldInfo
from .errors import ProviderFailure


class LLMProvider(Enum):
    """Supported conversation providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    ECHO = "echo"


HISTORY_TURNS = 8
MAX_TURN_LENGTH = 500

SYSTEM_PROMPT = """You are an AI assistant for a tabletop role-playing game session running on a virtual tabletop.

Main capabilities:
1. RPG assistance: rules, mechanics, character creation and narrative
2. Game management: suggesting actors, items, scenes and journals to create
3. Dice: explaining and interpreting rolls
4. Creative narration: descriptions, NPC dialogue and story hooks

Guidelines:
- Be accurate and helpful about rules
- Keep an engaging tone that suits the campaign
- When unsure about a rule, say so and suggest sources

Special markers:
- Use [ROLL:formula] to suggest a roll
- Use [CREATE:type:name] to suggest creating an element
- Use [SEARCH:type:term] to suggest a search

Current context:
- System: {ruleset}
- Scene: {scene}
- Players: {players}

Answer as an experienced game master and helpful assistant."""


def build_system_prompt(world: WorldInfo) -> str:
    """Render the system prompt for the given world snapshot."""
    return SYSTEM_PROMPT.format(
        ruleset=world.ruleset or "not specified",
        scene=world.active_scene or "not specified",
        players=world.player_count or "not specified",
    )


def _truncate(content: str) -> str:
    if len(content) > MAX_TURN_LENGTH:
        return content[:MAX_TURN_LENGTH - 3] + "..."
    return content


def build_messages(text: str, context: ConversationContext) -> List[Dict[str, str]]:
    """Chat messages (without the system prompt) for ``text`` in ``context``.

    Assistant replies map to the ``assistant`` role; every other turn is a
    ``user`` message prefixed with its speaker.
    """
    messages = []
    for turn in context.recent_turns[-HISTORY_TURNS:]:
        if turn.kind == TurnKind.MENTION_REPLY:
            messages.append({"role": "assistant", "content": _truncate(turn.content)})
        else:
            messages.append({"role": "user", "content": _truncate(f"{turn.speaker}: {turn.content}")})
    messages.append({"role": "user", "content": f"{context.speaker}: {text}"})
    return messages


class LLMClient(ABC):
    """Abstract base class for conversation providers."""

    provider: LLMProvider

    def __init__(self, config: LLMConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self.provider.value

    @abstractmethod
    async def process_message(self, text: str, context: ConversationContext) -> str:
        """Answer ``text`` given the conversation context.

        Raises:
            ProviderFailure: if the backend fails or returns nothing usable
        """
        pass


class OpenAIClient(LLMClient):
    """OpenAI chat completions provider."""

    provider = LLMProvider.OPENAI

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        if not OPENAI_AVAILABLE:
            raise ImportError("OpenAI library not installed. Run: pip install openai")

        if not config.openai_api_key:
            raise ValueError("OpenAI API key not provided")

        self.client = openai.AsyncOpenAI(api_key=config.openai_api_key)
        self.model = config.default_model

    async def process_message(self, text: str, context: ConversationContext) -> str:
        messages = [{"role": "system", "content": build_system_prompt(context.world)}]
        messages.extend(build_messages(text, context))

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                presence_penalty=0.1,
                frequency_penalty=0.1,
            )
        except Exception as e:
            self.logger.error(f"OpenAI request failed: {e}")
            raise ProviderFailure(f"OpenAI request failed: {e}", provider=self.name) from e

        if not response.choices:
            raise ProviderFailure("OpenAI response has no choices", provider=self.name)

        content = response.choices[0].message.content
        if not isinstance(content, str) or not content.strip():
            raise ProviderFailure("OpenAI response content is empty", provider=self.name)

        return content.strip()


class AnthropicClient(LLMClient):
    """Anthropic Claude messages provider."""

    provider = LLMProvider.ANTHROPIC

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        if not ANTHROPIC_AVAILABLE:
            raise ImportError("Anthropic library not installed. Run: pip install anthropic")

        if not config.anthropic_api_key:
            raise ValueError("Anthropic API key not provided")

        self.client = anthropic.AsyncAnthropic(api_key=config.anthropic_api_key)
        # OpenAI model names are meaningless here
        model = config.default_model
        self.model = model if model.startswith("claude") else "claude-3-5-haiku-latest"

    @staticmethod
    def _alternate(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        # The messages API expects user/assistant alternation starting with user
        merged: List[Dict[str, str]] = []
        for message in messages:
            if not merged and message["role"] != "user":
                continue
            if merged and merged[-1]["role"] == message["role"]:
                merged[-1] = {
                    "role": message["role"],
                    "content": f"{merged[-1]['content']}\n{message['content']}",
                }
            else:
                merged.append(dict(message))
        return merged

    async def process_message(self, text: str, context: ConversationContext) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                system=build_system_prompt(context.world),
                messages=self._alternate(build_messages(text, context)),
                max_tokens=self.config.max_tokens,
                temperature=min(self.config.temperature, 1.0),
            )
        except Exception as e:
            self.logger.error(f"Anthropic request failed: {e}")
            raise ProviderFailure(f"Anthropic request failed: {e}", provider=self.name) from e

        if not response.content:
            raise ProviderFailure("Anthropic response has no content", provider=self.name)

        content_block = response.content[0]
        content_text = getattr(content_block, "text", None)
        if not content_text:
            raise ProviderFailure("Anthropic response content text is empty", provider=self.name)

        return content_text.strip()


class EchoClient(LLMClient):
    """Offline provider that repeats the message back."""

    provider = LLMProvider.ECHO

    def __init__(self, config: Optional[LLMConfig] = None):
        super().__init__(config or LLMConfig())

    async def process_message(self, text: str, context: ConversationContext) -> str:
        return f'You said: "{text}". This is a simulated response.'


def create_llm_client(config: LLMConfig, provider: Optional[LLMProvider] = None) -> LLMClient:
    """Factory function to create the appropriate conversation provider."""
    if provider is None and config.provider:
        try:
            provider = LLMProvider(config.provider.lower())
        except ValueError:
            raise ValueError(f"Unsupported LLM provider: {config.provider}") from None

    if provider is None:
        # Auto-detect based on available API keys
        if config.openai_api_key:
            provider = LLMProvider.OPENAI
        elif config.anthropic_api_key:
            provider = LLMProvider.ANTHROPIC
        else:
            provider = LLMProvider.ECHO

    if provider == LLMProvider.OPENAI:
        return OpenAIClient(config)
    elif provider == LLMProvider.ANTHROPIC:
        return AnthropicClient(config)
    elif provider == LLMProvider.ECHO:
        return EchoClient(config)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
