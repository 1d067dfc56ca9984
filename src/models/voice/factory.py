from typing import Callable, Dict, Optional, Type

from src.core.logger import logger
from src.core.settings import settings
from src.models.voice.base import (
    BaseSpeechProvider,
    BaseTranscriptionProvider,
    VoiceProviderConfig,
)
from src.models.voice.elevenlabs import ElevenLabsConfig, ElevenLabsProvider
from src.models.voice.openai_whisper import WhisperConfig, WhisperProvider


class VoiceProviderFactory:
    _transcription_registry: Dict[str, Callable[[VoiceProviderConfig], BaseTranscriptionProvider]] = {}
    _speech_registry: Dict[str, Callable[[VoiceProviderConfig], BaseSpeechProvider]] = {}

    @classmethod
    def register_transcription(cls, name: str, provider_class: Type[BaseTranscriptionProvider]) -> None:
        cls._transcription_registry[name.lower()] = provider_class
        logger.debug(f"Registered transcription provider: {name}")

    @classmethod
    def register_speech(cls, name: str, provider_class: Type[BaseSpeechProvider]) -> None:
        cls._speech_registry[name.lower()] = provider_class
        logger.debug(f"Registered speech provider: {name}")

    @classmethod
    def create_transcription_provider(cls, provider_name: Optional[str] = None) -> BaseTranscriptionProvider:
        provider_name = (provider_name or settings.voice.TRANSCRIPTION_PROVIDER).lower()

        if provider_name not in cls._transcription_registry:
            raise ValueError(
                f"Unknown transcription provider: {provider_name}. "
                f"Available: {list(cls._transcription_registry.keys())}"
            )

        logger.info(f"Creating transcription provider: {provider_name}")

        if provider_name == "openai":
            config = WhisperConfig(
                api_key=settings.voice.OPENAI_API_KEY,
                base_url=settings.voice.OPENAI_BASE_URL,
                model=settings.voice.WHISPER_MODEL,
                language=settings.voice.WHISPER_LANGUAGE,
                timeout_s=settings.voice.TRANSCRIBE_TIMEOUT_S,
            )
            return cls._transcription_registry[provider_name](config)

        raise NotImplementedError(f"Configuration for {provider_name} not yet implemented")

    @classmethod
    def create_speech_provider(cls, provider_name: Optional[str] = None) -> BaseSpeechProvider:
        provider_name = (provider_name or settings.voice.SPEECH_PROVIDER).lower()

        if provider_name not in cls._speech_registry:
            raise ValueError(
                f"Unknown speech provider: {provider_name}. "
                f"Available: {list(cls._speech_registry.keys())}"
            )

        logger.info(f"Creating speech provider: {provider_name}")

        if provider_name == "elevenlabs":
            config = ElevenLabsConfig(
                api_key=settings.voice.ELEVENLABS_API_KEY,
                base_url=settings.voice.ELEVENLABS_BASE_URL,
                voice_id=settings.voice.ELEVENLABS_VOICE_ID,
                model_id=settings.voice.ELEVENLABS_MODEL_ID,
                stability=settings.voice.ELEVENLABS_STABILITY,
                similarity_boost=settings.voice.ELEVENLABS_SIMILARITY_BOOST,
                timeout_s=settings.voice.TTS_TIMEOUT_S,
            )
            return cls._speech_registry[provider_name](config)

        raise NotImplementedError(f"Configuration for {provider_name} not yet implemented")


VoiceProviderFactory.register_transcription("openai", WhisperProvider)
VoiceProviderFactory.register_speech("elevenlabs", ElevenLabsProvider)
