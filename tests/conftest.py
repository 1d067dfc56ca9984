import asyncio
from typing import List, Optional

import pytest
from unittest.mock import AsyncMock

from src.agent.collaborators import (
    AudioCapture,
    CaptureHandle,
    ConversationEvents,
    Playback,
    PlaybackHandle,
    PlaybackOutcome,
    Reply,
    ResponderService,
    SpeechRecognizer,
    Transcriber,
)
from src.agent.orchestrator import ConversationOrchestrator
from src.core.exceptions import AlreadyEnded
from src.models.voice.base import BaseSpeechProvider, BaseTranscriptionProvider
from src.models.voice.types import RecognitionResult, Recording, TranscriptionResult
from src.services.session_manager import SessionManager
from src.services.transcript_store import TranscriptStore


class FakeCapture(AudioCapture):
    """Microphone that hears ``audio`` and, for the first turns, a pause."""

    def __init__(self, audio: bytes = b"voice", auto_end_turns: int = 1, error: Optional[Exception] = None):
        self.audio = audio
        self.auto_end_turns = auto_end_turns
        self.error = error
        self.begin_count = 0
        self.end_count = 0
        self.active: Optional[CaptureHandle] = None

    async def begin(self) -> CaptureHandle:
        self.begin_count += 1
        if self.error is not None:
            raise self.error
        handle = CaptureHandle()
        self.active = handle
        if self.begin_count <= self.auto_end_turns:
            handle.mark_speech_ended()
        return handle

    async def end(self, handle: CaptureHandle) -> Recording:
        if handle.ended:
            raise AlreadyEnded(handle.handle_id)
        handle.ended = True
        self.end_count += 1
        if self.active is handle:
            self.active = None
        if handle.error is not None:
            raise handle.error
        return Recording(data=self.audio, content_type="audio/webm")


class FakeTranscriber(Transcriber):
    def __init__(self, text: str = "what's the weather", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[Recording] = []

    async def transcribe(self, recording: Recording) -> TranscriptionResult:
        self.calls.append(recording)
        if self.error is not None:
            raise self.error
        return TranscriptionResult(text=self.text, duration_ms=1200)


class FakeResponder(ResponderService):
    def __init__(self, reply: Optional[Reply] = None, error: Optional[Exception] = None):
        self.reply = reply or Reply(text="Sunny, sir.", audio_url="/api/audio/a.mp3")
        self.error = error
        self.calls: List[str] = []

    async def respond(self, text: str, session_id: str) -> Reply:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.reply


class FakePlayback(Playback):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.handles: List[PlaybackHandle] = []
        self.live = 0
        self.max_live = 0
        self.stop_count = 0
        self.started = asyncio.Event()

    async def play(self, audio_url: str) -> PlaybackHandle:
        if self.error is not None:
            raise self.error
        handle = PlaybackHandle(audio_url)
        self.handles.append(handle)
        self.live += 1
        self.max_live = max(self.max_live, self.live)
        self.started.set()
        return handle

    def stop(self, handle: PlaybackHandle) -> None:
        self.stop_count += 1
        if handle.finish(PlaybackOutcome.STOPPED):
            self.live -= 1

    def finish(self, outcome: PlaybackOutcome = PlaybackOutcome.ENDED) -> None:
        handle = self.handles[-1]
        if handle.finish(outcome):
            self.live -= 1


class FakeRecognizer(SpeechRecognizer):
    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.active = 0
        self.sessions_started = 0

    async def listen(self):
        self.active += 1
        self.sessions_started += 1
        try:
            while True:
                result = await self.queue.get()
                if result is None:
                    return
                yield result
        finally:
            self.active -= 1

    def push(self, text: str, confidence: Optional[float] = 0.9) -> None:
        self.queue.put_nowait(RecognitionResult(text=text, confidence=confidence))

    def end_session(self) -> None:
        self.queue.put_nowait(None)


class RecordingEvents(ConversationEvents):
    def __init__(self):
        self.states: List[tuple] = []
        self.statuses: List[str] = []
        self.notifications: List[tuple] = []
        self.turns = []

    def state_changed(self, mode: str, conversation_mode: bool) -> None:
        self.states.append((mode, conversation_mode))

    def status(self, text: str) -> None:
        self.statuses.append(text)

    def notify(self, kind: str, title: str, message: str) -> None:
        self.notifications.append((kind, title, message))

    def turn_added(self, turn) -> None:
        self.turns.append(turn)

    @property
    def modes(self) -> List[str]:
        return [mode for mode, _ in self.states]


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def responder():
    return FakeResponder()


@pytest.fixture
def playback():
    return FakePlayback()


@pytest.fixture
def recognizer():
    return FakeRecognizer()


@pytest.fixture
def events():
    return RecordingEvents()


@pytest.fixture
def transcript_store():
    return TranscriptStore()


@pytest.fixture
def make_orchestrator(capture, transcriber, responder, playback, recognizer, events, transcript_store):
    def _make(**overrides) -> ConversationOrchestrator:
        kwargs = dict(
            session_id="session-1",
            capture=capture,
            transcriber=transcriber,
            responder=responder,
            playback=playback,
            store=transcript_store,
            recognizer=recognizer,
            events=events,
            settle_delay=0,
            recognizer_restart_delay=0,
        )
        kwargs.update(overrides)
        return ConversationOrchestrator(**kwargs)

    return _make


@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def mock_transcription_provider():
    provider = AsyncMock(spec=BaseTranscriptionProvider)
    provider.is_connected = True
    provider.connect = AsyncMock()
    provider.disconnect = AsyncMock()
    return provider


@pytest.fixture
def mock_speech_provider():
    provider = AsyncMock(spec=BaseSpeechProvider)
    provider.is_connected = True
    provider.connect = AsyncMock()
    provider.disconnect = AsyncMock()
    return provider


@pytest.fixture
def session_manager():
    return SessionManager(session_timeout=3600)


@pytest.fixture
def sample_audio_bytes():
    return b"\x00\x01\x02\x03" * 1000
