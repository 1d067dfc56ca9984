from src.agent.collaborators import Transcriber
from src.core.logger import logger
from src.core.exceptions import EmptyAudio, JarvisError, UpstreamUnreachable
from src.models.voice.base import BaseTranscriptionProvider
from src.models.voice.types import Recording, TranscriptionResult


class TranscriptionService(Transcriber):
    def __init__(self, voice_provider: BaseTranscriptionProvider):
        self._voice_provider = voice_provider

    async def transcribe(self, recording: Recording) -> TranscriptionResult:
        if not recording.data:
            raise EmptyAudio("No audio captured")

        try:
            result = await self._voice_provider.speech_to_text(recording)
        except JarvisError:
            raise
        except Exception as e:
            logger.error(f"Transcription error: {e}")
            raise UpstreamUnreachable(f"Failed to transcribe audio: {str(e)}") from e

        logger.info(f"Transcribed {recording.size} bytes in {result.duration_ms} ms of audio")
        return result
