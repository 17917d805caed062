"""Regular expressions shared by the translation core.

Patterns for key normalization, server id canonicalization, and chat line parsing.
"""

from __future__ import annotations

import re
from re import Pattern
from typing import Final

__all__: list[str] = [
    "ANGLE_CHAT_LINE_PATTERN",
    "COLON_CHAT_LINE_PATTERN",
    "NON_ALNUM_PATTERN",
    "UNDERSCORE_RUN_PATTERN",
    "WHITESPACE_RUN_PATTERN",
]

# Any run of whitespace, used for key normalization and tokenization
WHITESPACE_RUN_PATTERN: Final[Pattern[str]] = re.compile(r"\s+")

# Characters that may not appear in a canonical server id (directory name)
# Example: "Play.Example.com:25565" -> "play_example_com_25565"
NON_ALNUM_PATTERN: Final[Pattern[str]] = re.compile(r"[^a-z0-9]")

# Two or more consecutive underscores
UNDERSCORE_RUN_PATTERN: Final[Pattern[str]] = re.compile(r"_{2,}")

# Vanilla chat format
# Example: "<Steve> hello there"
ANGLE_CHAT_LINE_PATTERN: Final[Pattern[str]] = re.compile(r"^<(?P<speaker>[^>]+)>\s*(?P<text>.+)$")

# Plugin/server chat format
# Example: "Steve: hello there"
COLON_CHAT_LINE_PATTERN: Final[Pattern[str]] = re.compile(r"^(?P<speaker>[^:]+):\s*(?P<text>.+)$")
