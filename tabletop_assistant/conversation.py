"""Conversation history and the context handed to conversation providers."""

from collections import deque
from datetime import datetime
from enum import Enum
from typing import Deque, Iterator, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class TurnKind(str, Enum):
    """What produced a turn in the rolling buffer."""

    COMMAND = "command"
    MENTION_REPLY = "mention-reply"
    ORDINARY = "ordinary"


class ConversationTurn(BaseModel):
    """A single chat message remembered by the router."""

    model_config = ConfigDict(frozen=True)

    speaker: str
    content: str
    kind: TurnKind = TurnKind.ORDINARY
    timestamp: datetime = Field(default_factory=datetime.now)


class WorldInfo(BaseModel):
    """Host-supplied snapshot of the game world."""

    model_config = ConfigDict(frozen=True)

    active_scene: Optional[str] = None
    player_count: int = 0
    ruleset: Optional[str] = None


class ConversationContext(BaseModel):
    """Everything a provider needs to answer a mention."""

    model_config = ConfigDict(frozen=True)

    speaker: str
    recent_turns: List[ConversationTurn] = Field(default_factory=list)
    world: WorldInfo = Field(default_factory=WorldInfo)
    timestamp: datetime = Field(default_factory=datetime.now)


class ConversationHistory:
    """Bounded rolling buffer of turns, evicted oldest first."""

    def __init__(self, limit: int = 100):
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._turns: Deque[ConversationTurn] = deque(maxlen=limit)

    def append(self, turn: ConversationTurn) -> ConversationTurn:
        self._turns.append(turn)
        return turn

    def add(self, speaker: str, content: str, kind: TurnKind = TurnKind.ORDINARY) -> ConversationTurn:
        return self.append(ConversationTurn(speaker=speaker, content=content, kind=kind))

    def recent(self, count: int) -> List[ConversationTurn]:
        """Return the last ``count`` turns, oldest first."""
        if count <= 0:
            return []
        return list(self._turns)[-count:]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(list(self._turns))


def build_context(
    history: ConversationHistory,
    speaker: str,
    world: Optional[WorldInfo] = None,
    turns: int = 10,
) -> ConversationContext:
    """Assemble a provider context from the last ``turns`` turns.

    Does not modify ``history``.
    """
    return ConversationContext(
        speaker=speaker,
        recent_turns=history.recent(turns),
        world=world or WorldInfo(),
    )


@runtime_checkable
class ConversationProvider(Protocol):
    """Anything that can answer free text given a context."""

    async def process_message(self, text: str, context: ConversationContext) -> str:
        ...
