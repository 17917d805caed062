"""Configuration file loader and validator.

Reads the JSON configuration file into a ``Config`` object, coercing and validating each value.
A missing, empty, unreadable or invalid file is replaced with the defaults, which are written back
so the user has a complete file to edit.
"""

from __future__ import annotations

import json
import math
from dataclasses import fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import urlparse

from models.config_models import Config
from utils.file_utils import FileUtils
from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable

__all__: list[str] = [
    "CONFIG_FILE_NAME",
    "ConfigFormatError",
    "ConfigInvalidError",
    "ConfigLoader",
    "ConfigLoaderError",
    "ConfigSaveError",
]

logger: logging.Logger = LoggerUtils.get_logger(__name__)

CONFIG_FILE_NAME: Final[str] = "chat_llm_translation.json"
ALLOWED_URL_SCHEMES: Final[tuple[str, ...]] = ("http", "https")
TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

# Inclusive (min, max) bounds; None leaves that side open.
NUMERIC_RANGES: Final[dict[str, tuple[float | None, float | None]]] = {
    "request_timeout": (1, None),
    "outgoing_translation_timeout": (1, None),
    "max_tokens": (1, None),
    "temperature": (0.0, 2.0),
    "top_p": (0.0, 1.0),
    "chat_history_size": (1, None),
    "context_message_count": (0, None),
    "rag_max_entries": (1, None),
    "memory_cache_max_entries": (0, None),
    "max_cache_load_on_join": (0, None),
    "llama_server_port": (1, 65535),
    "llama_context_size": (1, None),
    "llama_batch_size": (1, None),
    "llama_threads": (1, None),
    "llama_parallel": (1, None),
    "llama_main_gpu": (0, None),
    "llama_gpu_id": (-1, None),
}


class ConfigLoaderError(Exception):
    """An error occurred while processing the configuration file."""


class ConfigFormatError(ConfigLoaderError):
    """The configuration file is not a JSON object."""


class ConfigInvalidError(ConfigLoaderError):
    """The configuration file contains a value of the wrong type or out of range."""


class ConfigSaveError(ConfigLoaderError):
    """The configuration could not be written."""


class ConfigLoader:
    """Loads, validates, and saves the configuration.

    The loader owns one ``Config`` instance. Components receive that instance explicitly and
    may mutate it; ``save()`` persists the current values.

    Args:
        config_path (str | Path | None): JSON file to use. Defaults to
            ``<platform config dir>/chat_llm_translation.json``.
    """

    def __init__(self, config_path: str | Path | None = None) -> None:
        self.config_path: Path = (
            FileUtils.resolve_path(config_path) if config_path else FileUtils.config_dir() / CONFIG_FILE_NAME
        )
        self.config: Config = self.load()

    def load(self) -> Config:
        """Read the configuration file, falling back to defaults on any problem.

        Returns:
            Config: Loaded configuration, or defaults that have been written back to disk.
        """
        try:
            config: Config = self._read()
        except FileNotFoundError:
            logger.info("Configuration file not found, creating defaults: '%s'", self.config_path)
        except (ConfigLoaderError, OSError) as err:
            logger.warning("Failed to load configuration '%s': %s. Resetting to defaults.", self.config_path, err)
        else:
            logger.debug("Configuration loaded from '%s'", self.config_path)
            return config

        config = Config()
        self._write_defaults(config)
        return config

    def save(self) -> None:
        """Write the current configuration.

        Raises:
            ConfigSaveError: If the file cannot be written.
        """
        self._write(self.config)
        logger.debug("Configuration saved to '%s'", self.config_path)

    def reload(self) -> Config:
        """Re-read the file into a fresh ``Config``."""
        self.config = self.load()
        return self.config

    def _read(self) -> Config:
        try:
            text: str = self.config_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as err:
            msg = f"Configuration file is not valid UTF-8: {err}"
            raise ConfigFormatError(msg) from err
        if not text.strip():
            msg = "Configuration file is empty"
            raise ConfigFormatError(msg)

        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError as err:
            msg = f"Failed to parse configuration file: {err}"
            raise ConfigFormatError(msg) from err
        if not isinstance(data, dict):
            msg = f"Configuration root must be an object, got {type(data).__name__}"
            raise ConfigFormatError(msg)

        config = Config()
        key_map: dict[str, str] = Config.json_key_map()
        formatter = _ConfigFormatter(config)
        for json_key, value in data.items():
            attr: str | None = key_map.get(json_key)
            if attr is None:
                logger.warning("Ignoring unknown configuration key: '%s'", json_key)
                continue
            setattr(config, attr, formatter.apply_format(attr, json_key, value))

        self._validate_settings(config)
        return config

    def _write(self, config: Config) -> None:
        text: str = json.dumps(config.to_json_dict(), ensure_ascii=False, indent=2)
        try:
            FileUtils.atomic_write_text(self.config_path, text + "\n")
        except OSError as err:
            msg = f"Failed to write configuration file '{self.config_path}': {err}"
            raise ConfigSaveError(msg) from err

    def _write_defaults(self, config: Config) -> None:
        try:
            self._write(config)
        except ConfigSaveError as err:
            logger.error("%s", err)

    def _validate_settings(self, config: Config) -> None:
        """Check ranges and URLs.

        Raises:
            ConfigInvalidError: If any value is out of range or malformed.
        """
        for attr, (lower, upper) in NUMERIC_RANGES.items():
            value: float = getattr(config, attr)
            if (lower is not None and value < lower) or (upper is not None and value > upper):
                msg = f"'{attr}' is out of range: {value} (allowed: {lower} to {upper})"
                raise ConfigInvalidError(msg)

        self._validate_url("llm_server_url", config.llm_server_url, required=not config.use_online_api)
        self._validate_url("online_api_url", config.online_api_url, required=False)
        if config.use_online_api and not config.online_api_url:
            logger.warning("'useOnlineApi' is enabled but 'onlineApiUrl' is empty; translations will fail.")

        if config.load_full_cache_on_join:
            logger.info("'loadFullCacheOnJoin' is reserved and has no effect (limit %d).", config.max_cache_load_on_join)

    @staticmethod
    def _validate_url(attr: str, value: str, *, required: bool) -> None:
        if not value:
            if required:
                msg = f"'{attr}' must not be empty"
                raise ConfigInvalidError(msg)
            return
        parsed = urlparse(value)
        if parsed.scheme not in ALLOWED_URL_SCHEMES or not parsed.netloc:
            msg = f"'{attr}' is not a valid http(s) URL: '{value}'"
            raise ConfigInvalidError(msg)

    @staticmethod
    def resolve_data_dir(config: Config) -> Path:
        """Data directory from ``dataDir``, or the platform data directory when empty."""
        return FileUtils.resolve_path(config.data_dir) if config.data_dir.strip() else FileUtils.data_dir()


class _ConfigFormatter:
    """Coerces JSON values to the type of the corresponding default in ``Config``."""

    def __init__(self, defaults: Config) -> None:
        self._types: dict[str, type] = {f.name: type(getattr(defaults, f.name)) for f in fields(defaults)}

    def apply_format(self, attr: str, json_key: str, value: Any) -> Any:
        """Convert a JSON value to the declared field type.

        Raises:
            ConfigInvalidError: If the value cannot be coerced.
        """
        formatters: dict[type, Callable[[Any], Any]] = {
            bool: self.parse_as_boolean,
            int: self.parse_as_integer,
            float: self.parse_as_float,
            str: self.parse_as_string,
        }
        formatter: Callable[[Any], Any] = formatters[self._types[attr]]
        try:
            return formatter(value)
        except (TypeError, ValueError, OverflowError) as err:
            msg = f"Invalid value for '{json_key}': {value!r} ({err})"
            raise ConfigInvalidError(msg) from err

    @staticmethod
    def parse_as_boolean(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            word: str = value.strip().lower()
            if word in TRUE_WORDS:
                return True
            if word in FALSE_WORDS:
                return False
        msg = "expected a boolean"
        raise TypeError(msg)

    @staticmethod
    def parse_as_integer(value: Any) -> int:
        if isinstance(value, bool):
            msg = "expected an integer"
            raise TypeError(msg)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not value.is_integer():
                msg = "expected an integer"
                raise ValueError(msg)
            return int(value)
        if isinstance(value, str):
            return int(float(value.strip()))
        msg = "expected an integer"
        raise TypeError(msg)

    @staticmethod
    def parse_as_float(value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            msg = "expected a number"
            raise TypeError(msg)
        number: float = float(value)
        if not math.isfinite(number):
            msg = "expected a finite number"
            raise ValueError(msg)
        return number

    @staticmethod
    def parse_as_string(value: Any) -> str:
        if not isinstance(value, str):
            msg = "expected a string"
            raise TypeError(msg)
        return value
