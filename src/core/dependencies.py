import asyncio
from typing import Optional

from src.agent.graph import create_response_graph
from src.agent.interruption import InterruptionPolicy
from src.agent.tracing import TurnTracer, flush_langfuse_tracer, setup_langfuse_tracer
from src.models.voice.base import BaseSpeechProvider, BaseTranscriptionProvider
from src.models.voice.factory import VoiceProviderFactory
from src.services.audio_store import AudioStore
from src.services.conversation_service import ConversationService
from src.services.session_manager import SessionManager
from src.services.transcript_store import TranscriptStore
from src.services.transcription_service import TranscriptionService
from src.services.tts_service import TTSService
from src.services.workflow_service import WorkflowService
from src.core.logger import logger
from src.core.settings import settings


class DependencyContainer:
    _instance: Optional["DependencyContainer"] = None

    def __init__(self):
        self._session_manager: Optional[SessionManager] = None
        self._transcript_store: Optional[TranscriptStore] = None
        self._audio_store: Optional[AudioStore] = None
        self._transcription_provider: Optional[BaseTranscriptionProvider] = None
        self._speech_provider: Optional[BaseSpeechProvider] = None
        self._transcription_service: Optional[TranscriptionService] = None
        self._tts_service: Optional[TTSService] = None
        self._workflow_service: Optional[WorkflowService] = None
        self._response_graph = None
        self._conversation_service: Optional[ConversationService] = None
        self._cleanup_task: Optional[asyncio.Task] = None

    @classmethod
    def get_instance(cls) -> "DependencyContainer":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_session_manager(self) -> SessionManager:
        if self._session_manager is None:
            self._session_manager = SessionManager(session_timeout=settings.api.SESSION_TIMEOUT_S)
            self._session_manager.on_delete(self.get_transcript_store().clear)
            logger.debug("SessionManager initialized")
        return self._session_manager

    def get_transcript_store(self) -> TranscriptStore:
        if self._transcript_store is None:
            self._transcript_store = TranscriptStore()
            logger.debug("TranscriptStore initialized")
        return self._transcript_store

    def get_audio_store(self) -> AudioStore:
        if self._audio_store is None:
            self._audio_store = AudioStore(settings.api.AUDIO_DIR)
        return self._audio_store

    def get_transcription_provider(self) -> BaseTranscriptionProvider:
        if self._transcription_provider is None:
            self._transcription_provider = VoiceProviderFactory.create_transcription_provider()
        return self._transcription_provider

    def get_speech_provider(self) -> BaseSpeechProvider:
        if self._speech_provider is None:
            self._speech_provider = VoiceProviderFactory.create_speech_provider()
        return self._speech_provider

    def get_transcription_service(self) -> TranscriptionService:
        if self._transcription_service is None:
            self._transcription_service = TranscriptionService(self.get_transcription_provider())
        return self._transcription_service

    def get_tts_service(self) -> TTSService:
        if self._tts_service is None:
            self._tts_service = TTSService(self.get_speech_provider(), self.get_audio_store())
        return self._tts_service

    def get_workflow_service(self) -> WorkflowService:
        if self._workflow_service is None:
            self._workflow_service = WorkflowService(
                webhook_url=settings.workflow.N8N_WEBHOOK_URL,
                timeout_s=settings.workflow.WEBHOOK_TIMEOUT_S,
            )
        return self._workflow_service

    def get_response_graph(self):
        if self._response_graph is None:
            speak = settings.voice.TTS_ENABLED
            self._response_graph = create_response_graph(
                workflow_service=self.get_workflow_service(),
                tts_service=self.get_tts_service() if speak else None,
                fallback_reply=settings.workflow.FALLBACK_REPLY,
                speak_replies=speak,
            )
            logger.debug("Response graph initialized")
        return self._response_graph

    def get_conversation_service(self) -> ConversationService:
        if self._conversation_service is None:
            self._conversation_service = ConversationService(self.get_response_graph())
        return self._conversation_service

    def get_interruption_policy(self) -> InterruptionPolicy:
        return InterruptionPolicy.from_settings(settings.conversation)

    def get_turn_tracer(self, session_id: str) -> TurnTracer:
        return TurnTracer(session_id)

    async def startup(self) -> None:
        setup_langfuse_tracer()
        await self.get_transcription_provider().connect()
        if settings.voice.TTS_ENABLED:
            await self.get_speech_provider().connect()
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_sessions_periodically())

    async def shutdown(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            await asyncio.wait({self._cleanup_task})
            self._cleanup_task = None
        for provider in (self._transcription_provider, self._speech_provider):
            if provider is not None and provider.is_connected:
                await provider.disconnect()
        flush_langfuse_tracer()

    async def _cleanup_sessions_periodically(self) -> None:
        interval = settings.api.SESSION_CLEANUP_INTERVAL_S
        while True:
            await asyncio.sleep(interval)
            self.get_session_manager().cleanup_expired_sessions()

    def reset(self) -> None:
        self.__init__()
        logger.debug("Dependency container reset")


def get_container() -> DependencyContainer:
    return DependencyContainer.get_instance()
