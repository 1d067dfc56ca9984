"""Common types and data structures for voice processing."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.core.exceptions import UnsupportedFormat


class AudioFormat(str, Enum):
    """Recording formats accepted by the transcription providers."""

    WAV = "wav"
    MP4 = "mp4"
    WEBM = "webm"
    OGG = "ogg"
    MP3 = "mp3"
    FLAC = "flac"

    @classmethod
    def from_content_type(cls, content_type: str) -> "AudioFormat":
        """Map a browser MIME type such as ``audio/webm;codecs=opus`` to a format.

        Raises:
            UnsupportedFormat: if the type is not one Whisper understands.
        """
        mime = (content_type or "").lower()
        if "wav" in mime:
            return cls.WAV
        if "mp4" in mime or "m4a" in mime:
            return cls.MP4
        if "webm" in mime:
            return cls.WEBM
        if "ogg" in mime:
            return cls.OGG
        if "mpeg" in mime or "mp3" in mime:
            return cls.MP3
        if "flac" in mime:
            return cls.FLAC
        raise UnsupportedFormat(f"Unsupported audio content type: {content_type!r}")


@dataclass
class Recording:
    """A finished microphone capture, owned by whoever holds it last."""

    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class TranscriptionResult:
    """Result from speech-to-text transcription."""

    text: str
    duration_ms: int = 0
    language: Optional[str] = None


@dataclass
class RecognitionResult:
    """One utterance from the continuous in-browser recognizer."""

    text: str
    confidence: Optional[float] = None
    is_final: bool = True
