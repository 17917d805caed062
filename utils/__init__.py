"""Utility modules for the chat translation core.

This package provides helpers for logging, file and directory handling, text normalization,
and GPU/model discovery.
"""

from utils.file_utils import FileUtils
from utils.logger_utils import LoggerUtils
from utils.string_utils import StringUtils
from utils.system_utils import SystemUtils

__all__: list[str] = ["FileUtils", "LoggerUtils", "StringUtils", "SystemUtils"]
