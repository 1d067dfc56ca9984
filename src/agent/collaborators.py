"""Interfaces for the devices and remote services the orchestrator drives.

The orchestrator never touches a microphone, an audio element or a network
socket itself. Each of those sits behind one of the abstractions below so
that the websocket adapters in ``src.api.client_devices`` and the fakes in
the test suite are interchangeable.
"""

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import AsyncIterator, Optional

from src.models.conversation import Turn
from src.models.voice.types import RecognitionResult, Recording, TranscriptionResult

_capture_ids = itertools.count(1)
_playback_ids = itertools.count(1)


class CaptureHandle:
    """A live microphone capture.

    ``mark_speech_ended`` is how either side says the user has finished
    talking: the client on VAD silence, the orchestrator on explicit stop.
    A device that fails mid-capture ends speech too and leaves its error on
    the handle for ``AudioCapture.end`` to raise.
    """

    def __init__(self, handle_id: Optional[str] = None):
        self.handle_id = handle_id or f"capture-{next(_capture_ids)}"
        self.started_at = datetime.now(UTC)
        self.ended = False
        self.error: Optional[Exception] = None
        self._speech_ended = asyncio.Event()

    @property
    def speech_ended(self) -> bool:
        return self._speech_ended.is_set()

    def mark_speech_ended(self) -> None:
        self._speech_ended.set()

    def fail(self, error: Exception) -> None:
        if self.error is None:
            self.error = error
        self._speech_ended.set()

    async def wait_for_speech_end(self) -> None:
        await self._speech_ended.wait()


class PlaybackOutcome(str, Enum):
    ENDED = "ended"
    ERRORED = "errored"
    STOPPED = "stopped"


class PlaybackHandle:
    """One audio element playing one URL. Finishes exactly once."""

    def __init__(self, audio_url: str, handle_id: Optional[str] = None):
        self.audio_url = audio_url
        self.handle_id = handle_id or f"playback-{next(_playback_ids)}"
        self._outcome: Optional[PlaybackOutcome] = None
        self._finished = asyncio.Event()

    @property
    def outcome(self) -> Optional[PlaybackOutcome]:
        return self._outcome

    @property
    def is_live(self) -> bool:
        return self._outcome is None

    def finish(self, outcome: PlaybackOutcome) -> bool:
        if self._outcome is not None:
            return False
        self._outcome = outcome
        self._finished.set()
        return True

    async def wait(self) -> PlaybackOutcome:
        await self._finished.wait()
        return self._outcome


@dataclass(frozen=True)
class Reply:
    text: str
    audio_url: Optional[str] = None


class AudioCapture(ABC):
    @abstractmethod
    async def begin(self) -> CaptureHandle:
        """Acquire the microphone and start streaming.

        Raises:
            PermissionDenied: the platform refused microphone access
            DeviceUnavailable: there is no usable input device
        """

    @abstractmethod
    async def end(self, handle: CaptureHandle) -> Recording:
        """Stop capturing, release the device and return the audio.

        Raises:
            AlreadyEnded: ``handle`` was already ended
            DeviceError: the device failed during the capture
        """


class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, recording: Recording) -> TranscriptionResult:
        pass


class ResponderService(ABC):
    @abstractmethod
    async def respond(self, text: str, session_id: str) -> Reply:
        pass


class Playback(ABC):
    @abstractmethod
    async def play(self, audio_url: str) -> PlaybackHandle:
        """Start playing ``audio_url``. Completion is reported through the handle."""

    @abstractmethod
    def stop(self, handle: PlaybackHandle) -> None:
        """Stop ``handle`` immediately and release its resources."""


class SpeechRecognizer(ABC):
    @abstractmethod
    def listen(self) -> AsyncIterator[RecognitionResult]:
        """Yield utterances until the recognizer stops on its own.

        Closing the iterator must tear the recognizer down.
        """


class ConversationEvents:
    """Receives orchestrator notifications. The default ignores them all."""

    def state_changed(self, mode: str, conversation_mode: bool) -> None:
        pass

    def status(self, text: str) -> None:
        pass

    def notify(self, kind: str, title: str, message: str) -> None:
        pass

    def turn_added(self, turn: Turn) -> None:
        pass
