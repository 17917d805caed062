"""Configuration data model for the chat translation core.

The settings are persisted as a flat JSON object with camelCase keys; dataclasses-json maps
them to the snake_case fields of ``Config``.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Final

from dataclasses_json import DataClassJsonMixin, LetterCase, dataclass_json

__all__: list[str] = ["DEFAULT_SYSTEM_PROMPT", "Config"]

DEFAULT_SYSTEM_PROMPT: Final[str] = """\
You are a pure translation machine. Translate to %s ONLY.

ABSOLUTE RULES - NO EXCEPTIONS:
1. OUTPUT = TRANSLATION ONLY (nothing else)
2. NO greetings, NO responses, NO conversations
3. NO explanations, NO comments, NO extra words
4. NO "Here is", NO "The translation is", NO formatting
5. If already in %s, output unchanged
6. Preserve emojis, special characters, and tone exactly

EXAMPLES:
Input: "Hello, how are you?"
Output: こんにちは、元気ですか？

Input: "Thank you!"
Output: ありがとうございます！

Input: "すでに日本語です"
Output: すでに日本語です

Translate now:
"""


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class Config(DataClassJsonMixin):
    """Process configuration.

    Timeouts are stored in milliseconds as in the JSON file; the ``*_sec`` properties give
    the values the asyncio code works with.
    """

    # Translation
    translation_enabled: bool = True
    auto_translate_incoming: bool = True
    auto_translate_outgoing: bool = False
    target_language: str = "Japanese"
    outgoing_target_language: str = "English"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Inference endpoint
    llm_server_url: str = "http://localhost:8080"
    use_online_api: bool = False
    online_api_url: str = ""
    online_api_key: str = ""
    request_timeout: int = 10000
    outgoing_translation_timeout: int = 5000
    max_tokens: int = 256
    temperature: float = 0.3
    top_p: float = 0.9

    # Context and storage
    chat_history_size: int = 50
    context_message_count: int = 3
    rag_enabled: bool = True
    rag_max_entries: int = 1000
    memory_cache_max_entries: int = 10000
    load_full_cache_on_join: bool = False
    max_cache_load_on_join: int = 500
    data_dir: str = ""
    debug_mode: bool = False

    # Local llama-server
    auto_start_llama_server: bool = True
    llama_server_path: str = ""
    llama_server_port: int = 8080
    llama_server_host: str = "0.0.0.0"  # noqa: S104
    llama_context_size: int = 4096
    llama_gpu_layers: int = -1
    llama_batch_size: int = 512
    llama_threads: int = 8
    llama_parallel: int = 4
    llama_main_gpu: int = 0
    llama_gpu_id: int = -1
    llama_model_file: str = "gemma-3-4b-q4.gguf"
    llama_cache_prompt: bool = True
    llama_metrics: bool = False

    @property
    def request_timeout_sec(self) -> float:
        return self.request_timeout / 1000.0

    @property
    def outgoing_translation_timeout_sec(self) -> float:
        return self.outgoing_translation_timeout / 1000.0

    def formatted_system_prompt(self, target_language: str | None = None) -> str:
        """Fill both placeholders of the prompt template with the target language."""
        language: str = target_language or self.target_language
        try:
            return self.system_prompt % (language, language)
        except (TypeError, ValueError):
            # Templates without exactly two %s are sent as written.
            return self.system_prompt

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase mapping written to disk."""
        return self.to_dict()

    @classmethod
    def json_key_map(cls) -> dict[str, str]:
        """Map of JSON key to attribute name."""
        # to_dict keeps field order, so keys and fields line up.
        return dict(zip(cls().to_dict(), (f.name for f in fields(cls)), strict=True))
