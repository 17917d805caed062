"""Data models for chat lines and chat-completion messages.

Defines the ChatLine record kept in the history buffer and the ChatMessage sent to the
inference endpoint.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal, TypeAlias

from dataclasses_json import DataClassJsonMixin, dataclass_json

__all__: list[str] = [
    "ChatLine",
    "ChatMessage",
    "Direction",
    "Role",
]

Role: TypeAlias = Literal["system", "user", "assistant"]


class Direction(StrEnum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


@dataclass(frozen=True)
class ChatLine:
    """One translated chat line.

    Attributes:
        speaker (str): Display name of the sender.
        original (str): Text as it was sent.
        translated (str): Translation, equal to ``original`` when nothing was translated.
        direction (Direction): Incoming (others) or outgoing (own messages).
        timestamp (float): Monotonic creation time in seconds.
    """

    speaker: str
    original: str
    translated: str
    direction: Direction = Direction.INCOMING
    timestamp: float = field(default_factory=time.monotonic)

    @property
    def is_translated(self) -> bool:
        return self.translated != self.original

    def to_context_messages(self) -> list[ChatMessage]:
        """Render this line as context for the model.

        The original is always sent as a user turn. An incoming line whose translation differs
        also contributes the translation as an assistant turn.
        """
        messages: list[ChatMessage] = [ChatMessage(role="user", content=f"[{self.speaker}]: {self.original}")]
        if self.direction is Direction.INCOMING and self.is_translated:
            messages.append(ChatMessage(role="assistant", content=self.translated))
        return messages

    def __str__(self) -> str:
        return f"[{self.speaker}] {self.original} -> {self.translated}"


@dataclass_json
@dataclass(frozen=True)
class ChatMessage(DataClassJsonMixin):
    """Message of an OpenAI-style chat-completion request."""

    role: Role
    content: str
