"""Bounded conversation history used as model context."""

from __future__ import annotations

import threading
from collections import deque
from typing import TYPE_CHECKING, ClassVar

from models.message_models import ChatLine, ChatMessage, Direction
from utils.logger_utils import LoggerUtils

if TYPE_CHECKING:
    import logging

__all__: list[str] = ["HistoryBuffer"]

logger: logging.Logger = LoggerUtils.get_logger(__name__)


class HistoryBuffer:
    """FIFO of chat lines; the oldest line is dropped once ``max_size`` is exceeded.

    Attributes:
        DEFAULT_MAX_SIZE (ClassVar[int]): Capacity used when none is given.
    """

    DEFAULT_MAX_SIZE: ClassVar[int] = 50

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        self._lines: deque[ChatLine] = deque(maxlen=max(1, max_size))
        self._lock: threading.Lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._lines.maxlen or 0

    def append(self, line: ChatLine) -> None:
        with self._lock:
            self._lines.append(line)

    def add(self, speaker: str, original: str, translated: str, direction: Direction = Direction.INCOMING) -> ChatLine:
        """Create a line and append it."""
        line = ChatLine(speaker=speaker, original=original, translated=translated, direction=direction)
        self.append(line)
        return line

    def recent_context(self, count: int) -> list[ChatMessage]:
        """Chat-completion messages for the last ``count`` lines, oldest first.

        Each line yields its original as a user turn; an incoming line that was translated
        also yields the translation as an assistant turn.
        """
        messages: list[ChatMessage] = []
        for line in self.recent(count):
            messages.extend(line.to_context_messages())
        return messages

    def recent(self, count: int) -> list[ChatLine]:
        if count <= 0:
            return []
        with self._lock:
            return list(self._lines)[-count:]

    def by_speaker(self, speaker: str) -> list[ChatLine]:
        with self._lock:
            return [line for line in self._lines if line.speaker == speaker]

    def snapshot(self) -> list[ChatLine]:
        with self._lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
        logger.debug("History cleared")

    def size(self) -> int:
        with self._lock:
            return len(self._lines)

    def __len__(self) -> int:
        return self.size()
