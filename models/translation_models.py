"""Models for translation results.

Defines the result variant returned by the inference branch of the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

__all__: list[str] = ["TranslationResult", "TranslationSource"]


class TranslationSource(StrEnum):
    """Tier that produced a translation."""

    MEMORY = "memory"
    STORE = "store"
    LLM = "llm"
    NONE = "none"


@dataclass(frozen=True)
class TranslationResult:
    """Outcome of one translation attempt.

    Attributes:
        text (str | None): Translated text. None if translation failed.
        source (TranslationSource): Tier the text came from.
        error (str | None): Short failure description for logging.
    """

    text: str | None = None
    source: TranslationSource = TranslationSource.NONE
    error: str | None = None

    @property
    def ok(self) -> bool:
        return bool(self.text)

    @classmethod
    def failure(cls, error: str) -> TranslationResult:
        return cls(text=None, source=TranslationSource.NONE, error=error)

    def text_or(self, fallback: str) -> str:
        """Translated text, or ``fallback`` when the attempt failed."""
        return self.text if self.text else fallback

    def __str__(self) -> str:
        if self.text is None:
            return ""
        return self.text
