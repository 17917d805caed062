"""Core components of the chat translation system.

This package contains the translation pipeline, caches, per-server storage, the inference client,
the llama-server supervisor, and the shared data container that wires them together.
"""

from core.pipeline import TranslationPipeline
from core.shared_data import SharedData
from core.version import VERSION

__all__: list[str] = [
    "VERSION",
    "SharedData",
    "TranslationPipeline",
]
