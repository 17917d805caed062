"""Persistent per-server retrieval store.

Holds ``normalized original -> RetrievalEntry`` for one remote server, ranks entries by lexical
similarity plus popularity, evicts the lowest ranked entries when full, and persists itself as a
JSON object.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import math
import threading
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from models.cache_models import RetrievalEntry
from utils.file_utils import FileUtils
from utils.logger_utils import LoggerUtils
from utils.string_utils import StringUtils

if TYPE_CHECKING:
    import logging
    from pathlib import Path

__all__: list[str] = [
    "RetrievalStore",
    "StoreCorruptError",
    "StoreError",
    "StoreIOError",
]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


class StoreError(Exception):
    """Base error for retrieval store persistence."""


class StoreIOError(StoreError):
    """The store file could not be read or written."""


class StoreCorruptError(StoreError):
    """The store file is not valid JSON or does not have the expected shape."""


class RetrievalStore:
    """Key to translation store with lexical search and bounded size.

    Every public method takes the store's own lock; entries handed out are copies.

    Attributes:
        SAVE_INTERVAL (ClassVar[int]): Number of upserts between background saves.
        EVICTION_RATIO (ClassVar[float]): Fraction of ``max_entries`` kept after eviction.
        MIN_SEARCH_SCORE (ClassVar[float]): Results must score strictly above this.
        POPULARITY_DIVISOR (ClassVar[float]): Divisor of ``ln(use_count + 1)``.
    """

    SAVE_INTERVAL: ClassVar[int] = 100
    EVICTION_RATIO: ClassVar[float] = 0.8
    MIN_SEARCH_SCORE: ClassVar[float] = 0.1
    POPULARITY_DIVISOR: ClassVar[float] = 10.0

    def __init__(self, path: Path, max_entries: int = 1000, *, load: bool = True) -> None:
        """Create a store bound to ``path``.

        Args:
            path (Path): JSON file backing the store.
            max_entries (int): Capacity; at least 1.
            load (bool): Read ``path`` immediately. Defaults to True.
        """
        self._path: Path = path
        self._max_entries: int = max(1, max_entries)
        self._entries: dict[str, RetrievalEntry] = {}
        # Insertion sequence per key, the last tie-breaker of search.
        self._order: dict[str, int] = {}
        self._sequence = itertools.count()
        self._upserts_since_save: int = 0
        self._lock: threading.Lock = threading.Lock()

        self._save_lock: threading.Lock = threading.Lock()
        self._generation: int = 0
        self._written_generation: int = -1
        self._background_saves: set[asyncio.Future[bool]] = set()

        if load:
            self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @max_entries.setter
    def max_entries(self, value: int) -> None:
        with self._lock:
            self._max_entries = max(1, value)
            if len(self._entries) > self._max_entries:
                self._evict_locked()

    @staticmethod
    def normalize(text: str) -> str:
        return StringUtils.normalize_key(text)

    @classmethod
    def score(cls, entry: RetrievalEntry, query: str) -> float:
        """Similarity of ``query`` to the entry's original plus its popularity bonus."""
        similarity: float = StringUtils.jaccard(query, entry.original)
        popularity: float = math.log(entry.use_count + 1) / cls.POPULARITY_DIVISOR
        return similarity + popularity

    def upsert(self, original: str, translated: str, context: str = "") -> None:
        """Insert or update the entry for ``original``.

        Refreshes the timestamp and increments ``use_count``. Evicts when the store grows past
        ``max_entries`` and schedules a save every ``SAVE_INTERVAL`` upserts.
        """
        key: str = self.normalize(original)
        if not key or not translated:
            logger.debug("Ignoring upsert with empty key or translation")
            return

        with self._lock:
            entry: RetrievalEntry | None = self._entries.get(key)
            if entry is None:
                entry = RetrievalEntry(original=original, translated=translated, context=context)
                self._entries[key] = entry
                self._order[key] = next(self._sequence)
            entry.translated = translated
            entry.timestamp = datetime.now(UTC)
            entry.use_count += 1

            if len(self._entries) > self._max_entries:
                self._evict_locked()

            self._upserts_since_save += 1
            save_due: bool = self._upserts_since_save >= self.SAVE_INTERVAL
            if save_due:
                self._upserts_since_save = 0

        if save_due:
            self._schedule_save()

    def exact(self, original: str) -> RetrievalEntry | None:
        """Look up ``original`` by its normalized key; a hit increments ``use_count``."""
        key: str = self.normalize(original)
        with self._lock:
            entry: RetrievalEntry | None = self._entries.get(key)
            if entry is None:
                return None
            entry.use_count += 1
            return replace(entry)

    def search(self, query: str, top_k: int = 5) -> list[RetrievalEntry]:
        """Rank entries against ``query``.

        Only entries scoring above ``MIN_SEARCH_SCORE`` are returned, best first. Ties go to the
        newer timestamp, then the higher ``use_count``, then the earlier insertion. Each returned
        entry's ``use_count`` is incremented.
        """
        if top_k <= 0:
            return []

        with self._lock:
            scored: list[tuple[float, str, RetrievalEntry]] = [
                (self.score(entry, query), key, entry) for key, entry in self._entries.items()
            ]
            scored = [item for item in scored if item[0] > self.MIN_SEARCH_SCORE]
            scored.sort(
                key=lambda item: (
                    -item[0],
                    -item[2].timestamp.timestamp(),
                    -item[2].use_count,
                    self._order[item[1]],
                )
            )

            results: list[RetrievalEntry] = []
            for _, _, entry in scored[:top_k]:
                entry.use_count += 1
                results.append(replace(entry))
            return results

    def clear(self) -> None:
        """Remove every entry and save the empty store."""
        with self._lock:
            count: int = len(self._entries)
            self._entries.clear()
            self._order.clear()
            self._upserts_since_save = 0
        logger.info("Retrieval store cleared (%d entries): %s", count, self._path)
        self.save()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> dict[str, RetrievalEntry]:
        """Snapshot of ``key -> entry`` (copies)."""
        with self._lock:
            return {key: replace(entry) for key, entry in self._entries.items()}

    def __len__(self) -> int:
        return self.size()

    def _evict_locked(self) -> None:
        target: int = int(self._max_entries * self.EVICTION_RATIO)
        ranked: list[tuple[float, int, str]] = sorted(
            (entry.eviction_rank(), self._order[key], key) for key, entry in self._entries.items()
        )
        to_remove: int = len(self._entries) - target
        for _, _, key in ranked[:to_remove]:
            del self._entries[key]
            del self._order[key]
        logger.debug("Evicted %d entries from retrieval store (%d left)", max(0, to_remove), len(self._entries))

    def load(self) -> None:
        """Replace the in-memory entries with the file contents.

        A missing or empty file yields an empty store. A corrupt file is logged and yields an
        empty store. An unreadable file is logged and leaves the entries untouched.
        """
        try:
            loaded: dict[str, RetrievalEntry] = self._read()
        except StoreCorruptError as err:
            logger.warning("Corrupt retrieval store, starting fresh: %s", err)
            loaded = {}
        except StoreIOError as err:
            logger.error("%s", err)
            return

        with self._lock:
            self._entries = loaded
            self._order = {key: next(self._sequence) for key in loaded}
            if len(self._entries) > self._max_entries:
                self._evict_locked()
        if loaded:
            logger.info("Retrieval store loaded: %d entries from %s", len(loaded), self._path)

    def save(self) -> bool:
        """Write the store atomically.

        Returns:
            bool: True on success. Failures are logged and the in-memory state is kept.
        """
        with self._lock:
            data: dict[str, Any] = {key: entry.to_dict() for key, entry in self._entries.items()}
            self._generation += 1
            generation: int = self._generation

        try:
            self._write(data, generation)
        except StoreIOError as err:
            logger.error("%s", err)
            return False
        return True

    async def save_async(self) -> bool:
        """``save`` on a worker thread."""
        return await asyncio.to_thread(self.save)

    def _read(self) -> dict[str, RetrievalEntry]:
        try:
            text: str = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as err:
            msg = f"Failed to read retrieval store '{self._path}': {err}"
            raise StoreIOError(msg) from err

        if not text.strip():
            logger.debug("Retrieval store file is empty, starting fresh: %s", self._path)
            return {}

        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError as err:
            msg = f"Invalid JSON in '{self._path}': {err}"
            raise StoreCorruptError(msg) from err
        if not isinstance(data, dict):
            msg = f"Root of '{self._path}' must be an object, got {type(data).__name__}"
            raise StoreCorruptError(msg)

        entries: dict[str, RetrievalEntry] = {}
        for key, raw in data.items():
            if not isinstance(raw, dict):
                msg = f"Entry '{key}' in '{self._path}' is not an object"
                raise StoreCorruptError(msg)
            try:
                entries[key] = RetrievalEntry.load(raw)
            except (KeyError, TypeError, ValueError) as err:
                msg = f"Entry '{key}' in '{self._path}' is malformed: {err!r}"
                raise StoreCorruptError(msg) from err
        return entries

    def _write(self, data: dict[str, Any], generation: int) -> None:
        with self._save_lock:
            if generation < self._written_generation:
                # A newer snapshot is already on disk.
                return
            try:
                FileUtils.atomic_write_text(self._path, json.dumps(data, ensure_ascii=False, indent=2))
            except OSError as err:
                msg = f"Failed to save retrieval store '{self._path}': {err}"
                raise StoreIOError(msg) from err
            self._written_generation = generation
        logger.debug("Retrieval store saved: %d entries to %s", len(data), self._path)

    def _schedule_save(self) -> None:
        try:
            loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        except RuntimeError:
            self.save()
            return
        fut: asyncio.Future[bool] = loop.run_in_executor(None, self.save)
        self._background_saves.add(fut)
        fut.add_done_callback(self._background_saves.discard)
