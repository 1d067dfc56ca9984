"""Device adapters backed by the browser on the other end of the websocket.

The microphone, the audio element and the speech recognizer all live in the
client. Each adapter turns an orchestrator call into an outbound message and
waits, where it has to, for the client's confirmation to come back through
the receive loop.
"""

import asyncio
from typing import AsyncIterator, Dict, Optional

from src.agent.collaborators import (
    AudioCapture,
    CaptureHandle,
    Playback,
    PlaybackHandle,
    PlaybackOutcome,
    SpeechRecognizer,
)
from src.core.exceptions import AlreadyEnded, DeviceUnavailable, PermissionDenied
from src.core.logger import logger
from src.models.voice.types import RecognitionResult, Recording
from src.services.audio_service import AudioService

DEFAULT_CONTENT_TYPE = "audio/webm"


class ClientChannel:
    """Outbound message queue plus futures for replies the client owes us."""

    def __init__(self):
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._pending: Dict[str, asyncio.Future] = {}
        self.closed = False

    def send(self, message: dict) -> None:
        if self.closed:
            logger.debug(f"Dropping {message.get('type')} for closed channel")
            return
        self._outbox.put_nowait(message)

    async def next_outgoing(self) -> dict:
        return await self._outbox.get()

    def expect(self, key: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        if self.closed:
            future.set_result(None)
        else:
            self._pending[key] = future
        return future

    def resolve(self, key: str, value=None) -> bool:
        future = self._pending.pop(key, None)
        if future is None or future.done():
            return False
        future.set_result(value)
        return True

    def reject(self, key: str, exc: Exception) -> bool:
        future = self._pending.pop(key, None)
        if future is None or future.done():
            return False
        future.set_exception(exc)
        return True

    def discard(self, key: str) -> None:
        self._pending.pop(key, None)

    def close(self) -> None:
        self.closed = True
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_result(None)


class ClientAudioCapture(AudioCapture):
    def __init__(self, channel: ClientChannel, timeout_s: float = 5.0):
        self._channel = channel
        self._timeout_s = timeout_s
        self._buffer = AudioService(DEFAULT_CONTENT_TYPE)
        self._active: Optional[CaptureHandle] = None

    @property
    def active(self) -> Optional[CaptureHandle]:
        return self._active

    async def begin(self) -> CaptureHandle:
        if self._active is not None and not self._active.ended:
            raise DeviceUnavailable("Microphone is already capturing")

        handle = CaptureHandle()
        key = f"capture:{handle.handle_id}"
        confirmed = self._channel.expect(key)
        self._channel.send({"type": "start_capture", "id": handle.handle_id})

        try:
            content_type = await asyncio.wait_for(confirmed, self._timeout_s)
        except asyncio.TimeoutError:
            self._channel.discard(key)
            self._channel.send({"type": "stop_capture", "id": handle.handle_id})
            raise DeviceUnavailable("Client did not confirm microphone access in time")
        except asyncio.CancelledError:
            self._channel.discard(key)
            self._channel.send({"type": "stop_capture", "id": handle.handle_id})
            raise

        if self._channel.closed:
            raise DeviceUnavailable("Client disconnected")

        self._buffer.reset(content_type or DEFAULT_CONTENT_TYPE)
        self._active = handle
        return handle

    async def end(self, handle: CaptureHandle) -> Recording:
        if handle.ended:
            raise AlreadyEnded(f"Capture {handle.handle_id} already ended")
        handle.ended = True

        if handle.error is not None:
            # the device is gone; nothing buffered is worth transcribing
            self._channel.send({"type": "stop_capture", "id": handle.handle_id})
            if self._active is handle:
                self._active = None
            self._buffer.drain()
            raise handle.error

        key = f"capture_stop:{handle.handle_id}"
        stopped = self._channel.expect(key)
        self._channel.send({"type": "stop_capture", "id": handle.handle_id})

        content_type = None
        try:
            content_type = await asyncio.wait_for(stopped, self._timeout_s)
        except asyncio.TimeoutError:
            logger.warning(f"Client never confirmed stopping {handle.handle_id}; using buffered audio")
        finally:
            self._channel.discard(key)
            if self._active is handle:
                self._active = None

        if content_type:
            self._buffer.content_type = content_type
        recording = Recording(
            data=self._buffer.drain(),
            content_type=self._buffer.content_type or DEFAULT_CONTENT_TYPE,
        )
        return recording

    def on_capture_started(self, handle_id: str, content_type: Optional[str] = None) -> None:
        if not self._channel.resolve(f"capture:{handle_id}", content_type):
            logger.debug(f"Ignoring confirmation for stale capture {handle_id}")

    def on_capture_error(self, handle_id: str, reason: str) -> None:
        if reason == "permission_denied":
            error = PermissionDenied("Microphone access denied")
        else:
            error = DeviceUnavailable(f"Microphone unavailable: {reason}")

        if self._channel.reject(f"capture:{handle_id}", error):
            return
        if self._channel.reject(f"capture_stop:{handle_id}", error):
            logger.warning(f"Capture {handle_id} failed while stopping: {reason}")
            return
        if self._active is not None and self._active.handle_id == handle_id:
            logger.warning(f"Capture {handle_id} failed while recording: {reason}")
            self._active.fail(error)

    def on_audio(self, chunk: bytes) -> None:
        if self._active is None:
            logger.debug("Dropping audio chunk outside a capture")
            return
        self._buffer.add_chunk(chunk)

    def on_speech_ended(self) -> None:
        if self._active is not None:
            self._active.mark_speech_ended()

    def on_capture_stopped(self, handle_id: str, content_type: Optional[str] = None) -> None:
        self._channel.resolve(f"capture_stop:{handle_id}", content_type)


class ClientPlayback(Playback):
    def __init__(self, channel: ClientChannel):
        self._channel = channel
        self._handles: Dict[str, PlaybackHandle] = {}

    @property
    def live_count(self) -> int:
        return len(self._handles)

    async def play(self, audio_url: str) -> PlaybackHandle:
        for previous in list(self._handles.values()):
            self.stop(previous)

        handle = PlaybackHandle(audio_url)
        self._handles[handle.handle_id] = handle
        self._channel.send({"type": "play", "id": handle.handle_id, "audioUrl": audio_url})
        return handle

    def stop(self, handle: PlaybackHandle) -> None:
        self._handles.pop(handle.handle_id, None)
        if handle.finish(PlaybackOutcome.STOPPED):
            self._channel.send({"type": "stop_playback", "id": handle.handle_id})

    def on_client_event(self, handle_id: str, outcome: PlaybackOutcome) -> None:
        handle = self._handles.pop(handle_id, None)
        if handle is None:
            logger.debug(f"Ignoring {outcome.value} for retired playback {handle_id}")
            return
        handle.finish(outcome)


class ClientSpeechRecognizer(SpeechRecognizer):
    def __init__(self, channel: ClientChannel):
        self._channel = channel
        self._results: Optional[asyncio.Queue] = None

    @property
    def active(self) -> bool:
        return self._results is not None

    async def listen(self) -> AsyncIterator[RecognitionResult]:
        queue: asyncio.Queue = asyncio.Queue()
        self._results = queue
        self._channel.send({"type": "start_recognition"})
        try:
            while True:
                result = await queue.get()
                if result is None:
                    return
                yield result
        finally:
            if self._results is queue:
                self._results = None
                self._channel.send({"type": "stop_recognition"})

    def on_result(self, text: str, confidence: Optional[float] = None, is_final: bool = True) -> None:
        if self._results is None:
            logger.debug(f"Ignoring recognition result outside speaking: {text!r}")
            return
        if not is_final:
            return
        self._results.put_nowait(
            RecognitionResult(text=text, confidence=confidence, is_final=is_final)
        )

    def on_end(self) -> None:
        if self._results is not None:
            self._results.put_nowait(None)
