"""ElevenLabs text-to-speech provider."""

from typing import Optional

import httpx

from src.core.exceptions import TTSError
from src.core.logger import logger
from src.models.voice.base import BaseSpeechProvider, VoiceProviderConfig


class ElevenLabsConfig(VoiceProviderConfig):
    provider_name: str = "elevenlabs"
    base_url: str = "https://api.elevenlabs.io/v1"
    voice_id: str = "pNInz6obpgDQGcFmaJgB"  # Adam
    model_id: str = "eleven_monolingual_v1"
    stability: float = 0.5
    similarity_boost: float = 0.5


class ElevenLabsProvider(BaseSpeechProvider):
    """Synthesizes MP3 speech through the ElevenLabs REST API."""

    def __init__(self, config: ElevenLabsConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config, client)
        self.config: ElevenLabsConfig = config

    async def text_to_speech(self, text: str) -> bytes:
        api_key = self.require_api_key()
        url = f"{self.config.base_url.rstrip('/')}/text-to-speech/{self.config.voice_id}"
        body = {
            "text": text,
            "model_id": self.config.model_id,
            "voice_settings": {
                "stability": self.config.stability,
                "similarity_boost": self.config.similarity_boost,
            },
        }

        logger.debug(f"Generating speech with voice {self.config.voice_id} for text: {text[:50]}...")

        try:
            async with self.http() as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={
                        "Accept": "audio/mpeg",
                        "xi-api-key": api_key,
                    },
                    timeout=self.config.timeout_s,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"ElevenLabs API error: {e.response.status_code} - {e.response.text}")
            raise TTSError(f"ElevenLabs HTTP error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error reaching ElevenLabs: {e}")
            raise TTSError(f"ElevenLabs unreachable: {e}") from e

        if not response.content:
            raise TTSError("ElevenLabs returned no audio")

        logger.debug(f"TTS generation complete ({len(response.content)} bytes)")
        return response.content
