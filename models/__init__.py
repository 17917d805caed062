"""Data models for the chat translation core.

This package contains dataclass definitions for configuration, chat lines, translation results,
retrieval store entries, and the regular expression patterns used throughout the application.
"""

from __future__ import annotations

from models.cache_models import CacheStatistics, RetrievalEntry
from models.completion_models import ChatCompletionResponse, CompletionChoice, CompletionMessage
from models.config_models import DEFAULT_SYSTEM_PROMPT, Config
from models.message_models import ChatLine, ChatMessage, Direction, Role
from models.translation_models import TranslationResult, TranslationSource

__all__: list[str] = [
    "DEFAULT_SYSTEM_PROMPT",
    "CacheStatistics",
    "ChatCompletionResponse",
    "ChatLine",
    "ChatMessage",
    "CompletionChoice",
    "CompletionMessage",
    "Config",
    "Direction",
    "RetrievalEntry",
    "Role",
    "TranslationResult",
    "TranslationSource",
]
