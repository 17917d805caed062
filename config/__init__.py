"""Configuration loading and validation.

This package provides utilities for loading, validating, and saving the JSON configuration file.
"""

from config.loader import (
    ConfigFormatError,
    ConfigInvalidError,
    ConfigLoader,
    ConfigLoaderError,
    ConfigSaveError,
)

__all__: list[str] = [
    "ConfigFormatError",
    "ConfigInvalidError",
    "ConfigLoader",
    "ConfigLoaderError",
    "ConfigSaveError",
]
