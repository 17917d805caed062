"""Translation cache package.

Provides the in-memory cache, the persistent retrieval store, and in-flight request coalescing.
"""

from __future__ import annotations

from core.cache.inflight_manager import InFlightManager
from core.cache.memory_cache import InMemoryCache
from core.cache.retrieval_store import RetrievalStore, StoreCorruptError, StoreError, StoreIOError

__all__: list[str] = [
    "InFlightManager",
    "InMemoryCache",
    "RetrievalStore",
    "StoreCorruptError",
    "StoreError",
    "StoreIOError",
]
