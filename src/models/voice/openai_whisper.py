"""OpenAI Whisper transcription provider."""

from typing import Optional

import httpx

from src.core.exceptions import (
    EmptyAudio,
    UnsupportedFormat,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from src.core.logger import logger
from src.models.voice.base import BaseTranscriptionProvider, VoiceProviderConfig
from src.models.voice.types import AudioFormat, Recording, TranscriptionResult


class WhisperConfig(VoiceProviderConfig):
    provider_name: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    model: str = "whisper-1"
    language: Optional[str] = None


class WhisperProvider(BaseTranscriptionProvider):
    def __init__(self, config: WhisperConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config, client)
        self.config: WhisperConfig = config

    async def speech_to_text(self, recording: Recording) -> TranscriptionResult:
        if not recording.data:
            raise EmptyAudio("Recording contains no audio")

        audio_format = AudioFormat.from_content_type(recording.content_type)
        api_key = self.require_api_key()
        url = f"{self.config.base_url.rstrip('/')}/audio/transcriptions"

        form_data = {
            "model": self.config.model,
            "response_format": "verbose_json",
        }
        if self.config.language:
            form_data["language"] = self.config.language

        files = {
            "file": (f"recording.{audio_format.value}", recording.data, recording.content_type),
        }

        logger.debug(
            f"Transcribing {recording.size} bytes of {recording.content_type} with {self.config.model}"
        )

        try:
            async with self.http() as client:
                response = await client.post(
                    url,
                    data=form_data,
                    files=files,
                    headers={"Authorization": f"Bearer {api_key}"},
                    timeout=self.config.timeout_s,
                )
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Whisper request timed out: {e}")
            raise UpstreamTimeout("Transcription service timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"HTTP error in Whisper transcription: {status} - {e.response.text}")
            if status in (400, 415):
                raise UnsupportedFormat(f"Transcription rejected the audio: {status}") from e
            raise UpstreamUnreachable(f"Transcription service returned {status}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error reaching Whisper: {e}")
            raise UpstreamUnreachable(f"Transcription service unreachable: {e}") from e

        payload = response.json()
        duration_s = payload.get("duration") or 0.0
        result = TranscriptionResult(
            text=payload.get("text", ""),
            duration_ms=int(round(float(duration_s) * 1000)),
            language=payload.get("language"),
        )
        logger.debug(f"Transcribed: {result.text}")
        return result
