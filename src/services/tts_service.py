import asyncio

from src.core.logger import logger
from src.core.exceptions import TTSError
from src.models.voice.base import BaseSpeechProvider
from src.services.audio_store import AudioStore


class TTSService:
    def __init__(self, voice_provider: BaseSpeechProvider, audio_store: AudioStore):
        self._voice_provider = voice_provider
        self._audio_store = audio_store

    async def generate_speech(self, text: str) -> bytes:
        if not text or not text.strip():
            raise TTSError("Empty text provided for TTS")

        try:
            return await self._voice_provider.text_to_speech(text)
        except TTSError:
            raise
        except Exception as e:
            logger.error(f"TTS error: {e}")
            raise TTSError(f"Failed to generate speech: {str(e)}") from e

    async def synthesize_to_url(self, text: str) -> str:
        """Synthesize ``text`` and return the URL the client can play it from."""
        audio = await self.generate_speech(text)
        filename = await asyncio.to_thread(self._audio_store.save, audio)
        return self._audio_store.url_for(filename)
