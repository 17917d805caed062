"""Process-lifetime translation cache.

Maps the raw original text to its translation. Never persisted; cleared on command.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import TYPE_CHECKING, ClassVar

from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging

__all__: list[str] = ["InMemoryCache"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


class InMemoryCache:
    """Bounded LRU map from raw original text to translation.

    A lookup refreshes the entry's recency. When the capacity is exceeded the least recently
    used entry is dropped. A capacity of 0 disables the bound.

    Attributes:
        DEFAULT_MAX_ENTRIES (ClassVar[int]): Capacity used when none is given.
    """

    DEFAULT_MAX_ENTRIES: ClassVar[int] = 10000

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._max_entries: int = max(0, max_entries)
        self._lock: threading.Lock = threading.Lock()

    def get(self, original: str) -> str | None:
        with self._lock:
            translated: str | None = self._entries.get(original)
            if translated is not None:
                self._entries.move_to_end(original)
            return translated

    def put(self, original: str, translated: str) -> None:
        """Store a translation; empty values are ignored."""
        if not original or not translated:
            return
        with self._lock:
            self._entries[original] = translated
            self._entries.move_to_end(original)
            if self._max_entries and len(self._entries) > self._max_entries:
                dropped, _ = self._entries.popitem(last=False)
                logger.debug("Memory cache full, dropped least recently used entry: '%s'", dropped[:32])

    def clear(self) -> None:
        with self._lock:
            count: int = len(self._entries)
            self._entries.clear()
        logger.info("Memory cache cleared (%d entries)", count)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, original: object) -> bool:
        with self._lock:
            return original in self._entries

    def __len__(self) -> int:
        return self.size()
