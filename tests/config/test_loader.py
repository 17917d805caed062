from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import pytest

from config.loader import ConfigInvalidError, ConfigLoader, ConfigSaveError, _ConfigFormatter
from models.config_models import Config

if TYPE_CHECKING:
    from pathlib import Path


def _write_json(tmp_path: Path, content: Any) -> Path:
    path: Path = tmp_path / "chat_llm_translation.json"
    text: str = content if isinstance(content, str) else json.dumps(content)
    path.write_text(text, encoding="utf-8")
    return path


def _read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_missing_file_creates_defaults(tmp_path: Path) -> None:
    path: Path = tmp_path / "sub" / "config.json"

    loader = ConfigLoader(path)

    assert loader.config == Config()
    assert _read_json(path) == Config().to_json_dict()


@pytest.mark.parametrize("content", ["", "   \n", "{not json", "[1, 2, 3]"])
def test_unusable_file_is_reset_to_defaults(tmp_path: Path, content: str) -> None:
    path: Path = _write_json(tmp_path, content)

    loader = ConfigLoader(path)

    assert loader.config == Config()
    assert _read_json(path)["targetLanguage"] == "Japanese"


def test_non_utf8_file_is_reset_to_defaults(tmp_path: Path) -> None:
    path: Path = tmp_path / "chat_llm_translation.json"
    path.write_bytes(b'{"targetLanguage": "\xff\xfe"}')

    loader = ConfigLoader(path)

    assert loader.config == Config()
    assert _read_json(path) == Config().to_json_dict()


def test_values_are_loaded_and_coerced(tmp_path: Path) -> None:
    path: Path = _write_json(
        tmp_path,
        {
            "targetLanguage": "German",
            "requestTimeout": "2500",
            "temperature": 1,
            "ragEnabled": "no",
            "llamaServerPort": 9090.0,
        },
    )

    config: Config = ConfigLoader(path).config

    assert config.target_language == "German"
    assert config.request_timeout == 2500
    assert config.request_timeout_sec == pytest.approx(2.5)
    assert config.temperature == pytest.approx(1.0)
    assert config.rag_enabled is False
    assert config.llama_server_port == 9090
    # Keys absent from the file keep their defaults.
    assert config.chat_history_size == 50


@pytest.mark.parametrize(
    "content",
    [
        {"temperature": 5.0},
        {"llamaServerPort": 0},
        {"requestTimeout": "soon"},
        {"ragEnabled": "maybe"},
        {"llmServerUrl": "ftp://localhost"},
        {"targetLanguage": 3},
        {"maxTokens": "inf"},
        {"maxTokens": "1e999"},
        {"temperature": "nan"},
    ],
)
def test_invalid_values_reset_to_defaults(tmp_path: Path, content: dict[str, Any]) -> None:
    path: Path = _write_json(tmp_path, content)

    loader = ConfigLoader(path)

    assert loader.config == Config()
    assert _read_json(path) == Config().to_json_dict()


def test_unknown_key_is_logged_and_ignored(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path: Path = _write_json(tmp_path, {"targetLanguage": "French", "favoriteColor": "blue"})

    with caplog.at_level(logging.WARNING):
        config: Config = ConfigLoader(path).config

    assert config.target_language == "French"
    assert "favoriteColor" in caplog.text


def test_online_mode_does_not_require_local_url(tmp_path: Path) -> None:
    path: Path = _write_json(
        tmp_path, {"useOnlineApi": True, "onlineApiUrl": "https://api.example.com/v1/chat", "llmServerUrl": ""}
    )

    config: Config = ConfigLoader(path).config

    assert config.use_online_api is True
    assert config.llm_server_url == ""


def test_save_and_reload_round_trip(tmp_path: Path) -> None:
    path: Path = tmp_path / "config.json"
    loader = ConfigLoader(path)
    loader.config.outgoing_target_language = "Spanish"
    loader.config.rag_max_entries = 42

    loader.save()
    reloaded: Config = loader.reload()

    assert reloaded.outgoing_target_language == "Spanish"
    assert reloaded.rag_max_entries == 42


def test_save_raises_when_path_is_a_directory(tmp_path: Path) -> None:
    loader = ConfigLoader(tmp_path / "config.json")
    loader.config_path = tmp_path

    with pytest.raises(ConfigSaveError):
        loader.save()


def test_resolve_data_dir_prefers_configured_path(tmp_path: Path) -> None:
    config = Config(data_dir=str(tmp_path / "data"))

    assert ConfigLoader.resolve_data_dir(config) == (tmp_path / "data").resolve()


def test_formatter_rejects_bool_for_integer() -> None:
    formatter = _ConfigFormatter(Config())

    with pytest.raises(ConfigInvalidError):
        formatter.apply_format("max_tokens", "maxTokens", True)
