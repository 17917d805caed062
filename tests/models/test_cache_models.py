from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from models.cache_models import CacheStatistics, RetrievalEntry
from models.config_models import DEFAULT_SYSTEM_PROMPT, Config


def test_entry_json_uses_camel_case_keys() -> None:
    entry = RetrievalEntry(
        original="Hello",
        translated="こんにちは",
        context="Steve",
        timestamp=datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC),
        use_count=3,
    )

    assert entry.to_dict() == {
        "originalText": "Hello",
        "translatedText": "こんにちは",
        "context": "Steve",
        "timestamp": "2025-01-02T03:04:05+00:00",
        "useCount": 3,
    }
    assert RetrievalEntry.load(entry.to_dict()) == entry


def test_load_treats_naive_timestamp_as_utc() -> None:
    entry: RetrievalEntry = RetrievalEntry.load(
        {"originalText": "a", "translatedText": "b", "timestamp": "2025-01-01T00:00:00"}
    )

    assert entry.timestamp.tzinfo is UTC
    assert entry.context == ""
    assert entry.use_count == 0


@pytest.mark.parametrize(
    ("data", "error"),
    [
        ({"translatedText": "b", "timestamp": "2025-01-01T00:00:00"}, KeyError),
        ({"originalText": 1, "translatedText": "b", "timestamp": "2025-01-01T00:00:00"}, TypeError),
        ({"originalText": "a", "translatedText": "b", "timestamp": "2025-01-01", "useCount": "2"}, TypeError),
        ({"originalText": "a", "translatedText": "b", "timestamp": "yesterday"}, ValueError),
        ({"originalText": "a", "translatedText": "b", "timestamp": "2025-01-01", "useCount": -3}, ValueError),
    ],
)
def test_load_rejects_malformed_data(data: dict[str, Any], error: type[Exception]) -> None:
    with pytest.raises(error):
        RetrievalEntry.load(data)


def test_eviction_rank_prefers_use_count_then_age() -> None:
    old = RetrievalEntry("a", "b", timestamp=datetime(2020, 1, 1, tzinfo=UTC), use_count=1)
    new = RetrievalEntry("c", "d", timestamp=datetime(2025, 1, 1, tzinfo=UTC), use_count=1)
    popular = RetrievalEntry("e", "f", timestamp=datetime(2020, 1, 1, tzinfo=UTC), use_count=5)

    assert old.eviction_rank() < new.eviction_rank() < popular.eviction_rank()


def test_statistics_str() -> None:
    stats = CacheStatistics(memory_entries=2, history_entries=1, store_entries=4, server_id="singleplayer")

    assert str(stats) == "server=singleplayer memory=2 history=1 rag=4"


def test_system_prompt_substitutes_language() -> None:
    config = Config(target_language="Korean")

    prompt: str = config.formatted_system_prompt()

    assert "Translate to Korean ONLY." in prompt
    assert "If already in Korean" in prompt
    assert "%s" not in prompt
    assert "Translate to English" in config.formatted_system_prompt("English")


def test_system_prompt_without_placeholders_is_sent_as_written() -> None:
    config = Config(system_prompt="Translate everything.")

    assert config.formatted_system_prompt() == "Translate everything."
    assert Config().system_prompt == DEFAULT_SYSTEM_PROMPT


def test_json_key_map_round_trip() -> None:
    key_map: dict[str, str] = Config.json_key_map()

    assert key_map["llmServerUrl"] == "llm_server_url"
    assert set(Config().to_json_dict()) == set(key_map)
