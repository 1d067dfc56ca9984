"""Abstract base classes for voice providers."""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from pydantic import BaseModel

from src.core.exceptions import ConfigurationError
from src.core.logger import logger
from src.models.voice.types import Recording, TranscriptionResult


class VoiceProviderConfig(BaseModel):
    """Base configuration for voice providers."""

    provider_name: str
    api_key: Optional[str] = None
    base_url: str
    timeout_s: float = 60.0


class BaseVoiceProvider(ABC):
    """Common lifecycle for HTTP-backed voice providers.

    Providers talk to hosted services (OpenAI, ElevenLabs, ...) over httpx.
    ``connect()`` opens a pooled client that is reused until ``disconnect()``;
    without it every request opens a short-lived client. A client can also be
    injected, which is how tests route requests to ``httpx.MockTransport``.
    """

    def __init__(self, config: VoiceProviderConfig, client: Optional[httpx.AsyncClient] = None):
        """Initialize the voice provider with configuration.

        Args:
            config: Provider-specific configuration
            client: Optional pre-built HTTP client; the provider never closes it
        """
        self.config = config
        self._client = client
        self._owns_client = False
        self._connected = client is not None

    async def connect(self) -> None:
        """Open the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_s)
            self._owns_client = True
        self._connected = True
        logger.info(f"Voice provider '{self.config.provider_name}' connected")

    async def disconnect(self) -> None:
        """Close the pooled HTTP client if this provider opened it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False
        self._connected = False
        logger.info(f"Voice provider '{self.config.provider_name}' disconnected")

    @property
    def is_connected(self) -> bool:
        """Check if provider holds an open HTTP client."""
        return self._connected

    def require_api_key(self) -> str:
        if not self.config.api_key:
            raise ConfigurationError(
                f"API key for voice provider '{self.config.provider_name}' is not set"
            )
        return self.config.api_key

    @asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.config.timeout_s) as client:
            yield client

    async def __aenter__(self):
        """Context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.disconnect()


class BaseTranscriptionProvider(BaseVoiceProvider):
    """Interface for speech-to-text services."""

    @abstractmethod
    async def speech_to_text(self, recording: Recording) -> TranscriptionResult:
        """Transcribe a complete recording.

        Args:
            recording: Audio bytes plus the MIME type they were captured in

        Returns:
            The recognized text and the audio duration

        Raises:
            UnsupportedFormat, EmptyAudio, UpstreamUnreachable, UpstreamTimeout
        """
        pass


class BaseSpeechProvider(BaseVoiceProvider):
    """Interface for text-to-speech services."""

    @abstractmethod
    async def text_to_speech(self, text: str) -> bytes:
        """Synthesize speech for ``text``.

        Returns:
            Encoded audio (MP3 for the bundled providers)

        Raises:
            TTSError
        """
        pass
