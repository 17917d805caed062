"""Data models for OpenAI-style chat-completion responses.

Only the fields the client reads are declared; anything else in the payload is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from dataclasses_json import DataClassJsonMixin, Undefined, dataclass_json

__all__: list[str] = ["ChatCompletionResponse", "CompletionChoice", "CompletionMessage"]


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class CompletionMessage(DataClassJsonMixin):
    role: str = "assistant"
    content: str | None = None


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class CompletionChoice(DataClassJsonMixin):
    message: CompletionMessage
    index: int = 0
    finish_reason: str | None = None


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class ChatCompletionResponse(DataClassJsonMixin):
    """Body of a non-streaming ``/v1/chat/completions`` response."""

    choices: list[CompletionChoice] = field(default_factory=list)

    @property
    def first_content(self) -> str | None:
        """``choices[0].message.content``, or None when absent."""
        if not self.choices:
            return None
        return self.choices[0].message.content
