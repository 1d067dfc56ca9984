"""Voice provider interfaces and implementations."""

from src.models.voice.base import (
    BaseSpeechProvider,
    BaseTranscriptionProvider,
    BaseVoiceProvider,
    VoiceProviderConfig,
)
from src.models.voice.elevenlabs import ElevenLabsConfig, ElevenLabsProvider
from src.models.voice.openai_whisper import WhisperConfig, WhisperProvider
from src.models.voice.types import (
    AudioFormat,
    RecognitionResult,
    Recording,
    TranscriptionResult,
)

__all__ = [
    "BaseVoiceProvider",
    "BaseTranscriptionProvider",
    "BaseSpeechProvider",
    "VoiceProviderConfig",
    "ElevenLabsConfig",
    "ElevenLabsProvider",
    "WhisperConfig",
    "WhisperProvider",
    "AudioFormat",
    "RecognitionResult",
    "Recording",
    "TranscriptionResult",
]
