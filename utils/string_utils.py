from __future__ import annotations

from typing import Final

from models.re_models import (
    ANGLE_CHAT_LINE_PATTERN,
    COLON_CHAT_LINE_PATTERN,
    NON_ALNUM_PATTERN,
    UNDERSCORE_RUN_PATTERN,
    WHITESPACE_RUN_PATTERN,
)

__all__: list[str] = ["StringUtils"]

SINGLEPLAYER_SERVER_ID: Final[str] = "singleplayer"
MIN_TOKEN_LENGTH: Final[int] = 2  # Tokens of length <= 1 carry no lexical signal.
UNKNOWN_SPEAKER: Final[str] = "Unknown"


class StringUtils:
    """String helpers for cache keys, server ids, and lexical scoring."""

    @staticmethod
    def ensure_str(value: str | None) -> str:
        """Return the value as a string, with None mapped to an empty string.

        Whitespace is preserved; callers that want a cache key use ``normalize_key``.
        """
        if not isinstance(value, str):
            value = str(value) if value is not None else ""
        return value

    @staticmethod
    def normalize_key(text: str) -> str:
        """Build the retrieval-store key for a chat line.

        Lowercases, trims, and collapses internal whitespace to single spaces. The result is a
        fixed point: ``normalize_key(normalize_key(x)) == normalize_key(x)``.

        Args:
            text (str): Raw chat text.

        Returns:
            str: Normalized key.
        """
        text = StringUtils.ensure_str(text)
        return WHITESPACE_RUN_PATTERN.sub(" ", text.lower().strip())

    @staticmethod
    def canonical_server_id(address: str | None) -> str:
        """Convert a remote server address into a filesystem-safe id.

        Args:
            address (str | None): Remote address as reported by the host. None or empty
                means no remote server.

        Returns:
            str: Lowercased id with every non-alphanumeric character replaced by '_' and
                underscore runs collapsed, or 'singleplayer'.
        """
        if not address or not address.strip():
            return SINGLEPLAYER_SERVER_ID
        server_id: str = NON_ALNUM_PATTERN.sub("_", address.strip().lower())
        return UNDERSCORE_RUN_PATTERN.sub("_", server_id)

    @staticmethod
    def tokenize(text: str) -> set[str]:
        """Split text into the lowercase token set used for lexical similarity."""
        text = StringUtils.ensure_str(text)
        return {token for token in WHITESPACE_RUN_PATTERN.split(text.lower()) if len(token) >= MIN_TOKEN_LENGTH}

    @staticmethod
    def jaccard(query: str, text: str) -> float:
        """Jaccard coefficient of the token sets of ``query`` and ``text``.

        Returns:
            float: Value in [0, 1]; 0 when either side has no tokens.
        """
        query_tokens: set[str] = StringUtils.tokenize(query)
        text_tokens: set[str] = StringUtils.tokenize(text)
        if not query_tokens or not text_tokens:
            return 0.0
        return len(query_tokens & text_tokens) / len(query_tokens | text_tokens)

    @staticmethod
    def split_chat_line(line: str) -> tuple[str, str]:
        """Split a rendered chat line into speaker and message.

        Recognizes "<speaker> text" and "speaker: text". Anything else is attributed to
        an unknown speaker.

        Args:
            line (str): Chat line as displayed by the host.

        Returns:
            tuple[str, str]: (speaker, message). The message is stripped.
        """
        line = StringUtils.ensure_str(line).strip()
        for pattern in (ANGLE_CHAT_LINE_PATTERN, COLON_CHAT_LINE_PATTERN):
            if match := pattern.match(line):
                return match.group("speaker").strip(), match.group("text").strip()
        return UNKNOWN_SPEAKER, line
