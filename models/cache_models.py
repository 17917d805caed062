"""Models for translation cache data.

Defines the retrieval store entry with its JSON form, and cache statistics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dataclasses_json import DataClassJsonMixin, LetterCase, config, dataclass_json

__all__: list[str] = [
    "CacheStatistics",
    "RetrievalEntry",
]


def _now() -> datetime:
    return datetime.now(UTC)


def _encode_timestamp(value: datetime) -> str:
    return value.isoformat()


def _decode_timestamp(value: Any) -> datetime:
    """ISO-8601 string to an aware datetime; naive values are taken as UTC."""
    timestamp: datetime = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class RetrievalEntry(DataClassJsonMixin):
    """Retrieval store entry data.

    Serialized as ``{"originalText", "translatedText", "context", "timestamp", "useCount"}``
    with an ISO-8601 timestamp. Mutated only while the owning store holds its lock.

    Attributes:
        original (str): Source text as first seen (not normalized).
        translated (str): Translated text.
        context (str): Free-form context, the speaker name for pipeline writes.
        timestamp (datetime): Time of the last write, timezone-aware.
        use_count (int): Number of writes and hits.
    """

    original: str = field(metadata=config(field_name="originalText"))
    translated: str = field(metadata=config(field_name="translatedText"))
    context: str = ""
    timestamp: datetime = field(
        default_factory=_now, metadata=config(encoder=_encode_timestamp, decoder=_decode_timestamp)
    )
    use_count: int = 0

    @classmethod
    def load(cls, data: dict[str, Any]) -> RetrievalEntry:
        """Build an entry from its JSON form, checking field types.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
            ValueError: If the timestamp is not ISO-8601 or useCount is negative.
        """
        # from_dict coerces scalars, so the raw types are checked first.
        for key in ("originalText", "translatedText", "timestamp"):
            if key not in data:
                raise KeyError(key)
        text_keys: tuple[str, ...] = ("originalText", "translatedText", "context", "timestamp")
        if not all(isinstance(data.get(key, ""), str) for key in text_keys):
            msg = "originalText, translatedText, context and timestamp must be strings"
            raise TypeError(msg)
        use_count: Any = data.get("useCount", 0)
        if isinstance(use_count, bool) or not isinstance(use_count, int):
            msg = "useCount must be an integer"
            raise TypeError(msg)
        if use_count < 0:
            msg = f"useCount must not be negative: {use_count}"
            raise ValueError(msg)
        return cls.from_dict(data)

    def eviction_rank(self) -> float:
        """Eviction rank; entries with the lowest rank are evicted first."""
        return self.use_count + int(self.timestamp.timestamp()) / 1_000_000


@dataclass
class CacheStatistics:
    """Cache usage statistics.

    Attributes:
        memory_entries (int): Entries in the in-memory cache.
        history_entries (int): Lines in the current history buffer.
        store_entries (int): Entries in the current retrieval store.
        server_id (str | None): Id of the current scope, None outside a server.
        total_uses (int): Sum of ``use_count`` over the current store.
        oldest_entry (datetime | None): Timestamp of the oldest store entry.
        newest_entry (datetime | None): Timestamp of the newest store entry.
    """

    memory_entries: int = 0
    history_entries: int = 0
    store_entries: int = 0
    server_id: str | None = None
    total_uses: int = 0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None

    def __str__(self) -> str:
        return (
            f"server={self.server_id or '-'} memory={self.memory_entries} "
            f"history={self.history_entries} rag={self.store_entries}"
        )
