"""Decides which recognizer results may cut off the assistant."""

import re
from dataclasses import dataclass, field
from typing import Iterable, Pattern, Tuple

from src.core.settings import ConversationSettings
from src.models.voice.types import RecognitionResult

DEFAULT_FILLER_PATTERNS = ("u+h+", "u+m+", "h+m+", "e+r+m*", "a+h+", "o+h+", "m+h+m+")

_PUNCTUATION = re.compile(r"[^\w\s']+")
_WHITESPACE = re.compile(r"\s+")


def normalize_utterance(text: str) -> str:
    text = _PUNCTUATION.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


def compile_fillers(patterns: Iterable[str]) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern) for pattern in patterns)


@dataclass(frozen=True)
class InterruptionPolicy:
    """Thresholds for treating overheard speech as a barge-in.

    Short, low-confidence or filler-only utterances are background noise
    and are dropped. Results with no confidence score pass the confidence
    check, since some recognizers never report one.
    """

    min_confidence: float = 0.5
    min_length: int = 3
    filler_patterns: Tuple[Pattern[str], ...] = field(
        default_factory=lambda: compile_fillers(DEFAULT_FILLER_PATTERNS)
    )

    @classmethod
    def from_settings(cls, conversation: ConversationSettings) -> "InterruptionPolicy":
        return cls(
            min_confidence=conversation.INTERRUPT_MIN_CONFIDENCE,
            min_length=conversation.INTERRUPT_MIN_LENGTH,
            filler_patterns=compile_fillers(conversation.INTERRUPT_FILLER_PATTERNS),
        )

    def is_filler(self, text: str) -> bool:
        words = normalize_utterance(text).split()
        if not words:
            return False
        return all(
            any(pattern.fullmatch(word) for pattern in self.filler_patterns)
            for word in words
        )

    def is_interruption(self, result: RecognitionResult) -> bool:
        text = normalize_utterance(result.text)
        if len(text) < self.min_length:
            return False
        if result.confidence is not None and result.confidence < self.min_confidence:
            return False
        return not self.is_filler(text)
