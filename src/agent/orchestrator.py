"""Turn-taking voice conversation state machine.

One ConversationOrchestrator drives one client session through

    idle -> listening -> transcribing -> dispatching -> speaking -> idle

Each turn runs in a single background task that awaits the capture, the
transcriber, the responder and the playback in that order. While the
assistant is speaking a second task listens for the user talking over it.
That recognizer task lives exactly as long as the speaking state.

Every turn is traced as one ``turn`` span with a child span per step, see
``src.agent.tracing``.
"""

import asyncio
import contextlib
from enum import Enum
from typing import Optional

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
from src.agent.interruption import InterruptionPolicy
from src.agent.state import NOT_RUNNING, ConversationState, Mode, RecognizerTask, Running
from src.agent.tracing import TurnTrace, TurnTracer
from src.core.exceptions import DeviceError, EmptyResult, PlaybackError, TranscriptionError
from src.core.logger import session_logger
from src.models.conversation import Turn
from src.models.voice.types import Recording
from src.services.transcript_store import TranscriptStore

STATUS_READY = "Ready for your command, sir."
STATUS_LISTENING = "Listening, sir..."
STATUS_PROCESSING = "Processing your command..."
STATUS_DISPATCHING = "JARVIS is processing your request..."
STATUS_RESPONDING = "JARVIS is responding..."
STATUS_INTERRUPTED = "Listening for your command, sir..."
STATUS_NOT_HEARD = "I didn't catch that, sir."
STATUS_MIC_DENIED = "Microphone access denied, sir."
STATUS_ERROR = "Error occurred. Ready for your command, sir."

DEFAULT_FALLBACK_REPLY = "I'm sorry, sir. I received no answer to that. Please try again."


class ErrorKind(str, Enum):
    DEVICE = "device_error"
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    EMPTY_RESULT = "empty_result"
    PLAYBACK = "playback_error"


_NOTIFICATIONS = {
    ErrorKind.DEVICE: (
        "Microphone Error",
        "Unable to access microphone. Please check permissions.",
    ),
    ErrorKind.UPSTREAM_UNREACHABLE: (
        "JARVIS Error",
        "Failed to process your request. Please try again.",
    ),
}


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, DeviceError):
        return ErrorKind.DEVICE
    if isinstance(exc, (EmptyResult, TranscriptionError)):
        return ErrorKind.EMPTY_RESULT
    if isinstance(exc, PlaybackError):
        return ErrorKind.PLAYBACK
    return ErrorKind.UPSTREAM_UNREACHABLE


class _TurnFailed(Exception):
    """Raised by a turn step to abandon the rest of the turn."""

    def __init__(self, kind: ErrorKind, error: BaseException):
        super().__init__(f"{kind.value}: {error}")
        self.kind = kind
        self.error = error


class ConversationOrchestrator:
    def __init__(
        self,
        session_id: str,
        capture: AudioCapture,
        transcriber: Transcriber,
        responder: ResponderService,
        playback: Playback,
        store: TranscriptStore,
        recognizer: Optional[SpeechRecognizer] = None,
        events: Optional[ConversationEvents] = None,
        policy: Optional[InterruptionPolicy] = None,
        tracer: Optional[TurnTracer] = None,
        settle_delay: float = 1.0,
        recognizer_restart_delay: float = 0.2,
        fallback_reply: str = DEFAULT_FALLBACK_REPLY,
    ):
        self._session_id = session_id
        self._log = session_logger(session_id)
        self._capture = capture
        self._transcriber = transcriber
        self._responder = responder
        self._playback = playback
        self._store = store
        self._recognizer = recognizer
        self._events = events or ConversationEvents()
        self._policy = policy or InterruptionPolicy()
        self._tracer = tracer or TurnTracer(session_id)
        self._settle_delay = settle_delay
        self._recognizer_restart_delay = recognizer_restart_delay
        self._fallback_reply = fallback_reply

        self._state = ConversationState()
        self._capture_handle: Optional[CaptureHandle] = None
        self._stop_requested = False
        self._turn_task: Optional[asyncio.Task] = None
        self._ending = 0
        self._recognizer_task: RecognizerTask = NOT_RUNNING
        self._recognizer_generation = 0
        self._interrupt_requested = asyncio.Event()
        self._pending_reply: Optional[Reply] = None

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def mode(self) -> Mode:
        return self._state.mode

    @property
    def conversation_mode_enabled(self) -> bool:
        return self._state.conversation_mode_enabled

    @property
    def active_playback(self) -> Optional[PlaybackHandle]:
        return self._state.active_playback

    @property
    def recognizer_task(self) -> RecognizerTask:
        return self._recognizer_task

    @property
    def interruption_listening(self) -> bool:
        return isinstance(self._recognizer_task, Running)

    def start_turn(self) -> bool:
        """Open the microphone for one user turn. Only valid while idle."""
        if self._ending:
            self._log.warning("start_turn ignored while the previous turn is being torn down")
            return False
        if self._state.mode is not Mode.IDLE:
            self._log.warning(f"start_turn ignored while {self._state.mode.value}")
            return False
        self._open_microphone(STATUS_LISTENING)
        return True

    def start_conversation(self) -> bool:
        """Enable hands-free mode and start listening if nothing is in flight."""
        if self._ending:
            return False
        self._state.conversation_mode_enabled = True
        self._log.info("conversation mode enabled")
        self._emit_state()
        if self._state.mode is Mode.IDLE:
            return self.start_turn()
        return True

    def stop_listening(self) -> bool:
        """The user says they are done talking."""
        if self._state.mode is not Mode.LISTENING:
            return False
        if self._capture_handle is None:
            # microphone not confirmed yet; end as soon as it is
            self._stop_requested = True
        else:
            self._capture_handle.mark_speech_ended()
        return True

    def interrupt(self) -> bool:
        """Cut the assistant off and listen for the next command."""
        if self._state.mode is not Mode.SPEAKING:
            return False
        self._log.info("manual interruption")
        self._interrupt_requested.set()
        return True

    async def end_turn(self) -> None:
        """Stop everything in flight and leave conversation mode.

        New turns are refused until teardown finishes, so nothing started
        while this awaits can outlive it.
        """
        self._log.info(f"ending turn from {self._state.mode.value}")
        self._ending += 1
        try:
            self._state.conversation_mode_enabled = False

            turn_task, self._turn_task = self._turn_task, None
            watcher = self._cancel_interruption_watch()
            self._retire_playback()

            current = asyncio.current_task()
            pending = {
                task for task in (turn_task, watcher)
                if task is not None and task is not current and not task.done()
            }
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)

            await self._release_microphone()
            self._flush_reply(keep_audio=False)
            if not self._set_mode(Mode.IDLE):
                self._emit_state()
            self._events.status(STATUS_READY)
        finally:
            self._ending -= 1

    async def shutdown(self) -> None:
        await self.end_turn()
        self._log.info("orchestrator shut down")

    def _open_microphone(self, status: str) -> None:
        self._stop_requested = False
        self._set_mode(Mode.LISTENING)
        self._events.status(status)
        task = asyncio.create_task(self._run_turn(), name=f"jarvis-turn-{self._session_id}")
        task.add_done_callback(self._log_task_failure)
        self._turn_task = task

    async def _run_turn(self) -> None:
        turn_trace = self._tracer.start_turn()
        try:
            await self._take_turn(turn_trace)
        except _TurnFailed as failure:
            turn_trace.end(failure.kind.value)
            if failure.kind is ErrorKind.EMPTY_RESULT:
                await self._soft_fail(failure.error)
            else:
                await self._fail(failure.kind, failure.error)
        finally:
            turn_trace.end("cancelled")

    async def _take_turn(self, turn_trace: TurnTrace) -> None:
        with turn_trace.step("listen") as step:
            handle = await self._acquire_microphone()
            await handle.wait_for_speech_end()
            recording = await self._collect_recording(handle)
            step.set("audio_bytes", recording.size)

        with turn_trace.step("transcribe") as step:
            text = await self._transcribe(recording)
            step.observe(recording.content_type, text)
        turn_trace.set_input(text)
        self._record(Turn.user(text))

        with turn_trace.step("dispatch") as step:
            reply = await self._dispatch(text)
            step.observe(text, reply.text)
        turn_trace.set_output(reply.text)

        if reply.audio_url:
            with turn_trace.step("speak") as step:
                interrupted = await self._speak(reply)
                step.observe(reply.audio_url)
                step.set("interrupted", interrupted)
            if interrupted:
                turn_trace.end("interrupted")
                self._open_microphone(STATUS_INTERRUPTED)
                return
        else:
            self._record(Turn.assistant(reply.text))

        turn_trace.end("completed")
        await self._complete_turn()

    async def _acquire_microphone(self) -> CaptureHandle:
        if self._capture_handle is not None:
            await self._release_microphone()
        try:
            handle = await self._capture.begin()
        except Exception as exc:
            raise _TurnFailed(ErrorKind.DEVICE, exc) from exc

        self._capture_handle = handle
        if self._stop_requested:
            handle.mark_speech_ended()
        self._log.debug(f"capture {handle.handle_id} started")
        return handle

    async def _collect_recording(self, handle: CaptureHandle) -> Recording:
        self._set_mode(Mode.TRANSCRIBING)
        self._events.status(STATUS_PROCESSING)
        try:
            recording = await self._capture.end(handle)
        except Exception as exc:
            raise _TurnFailed(ErrorKind.DEVICE, exc) from exc
        finally:
            self._capture_handle = None

        self._log.debug(f"captured {recording.size} bytes of {recording.content_type}")
        return recording

    async def _transcribe(self, recording: Recording) -> str:
        try:
            result = await self._transcriber.transcribe(recording)
        except Exception as exc:
            raise _TurnFailed(classify_error(exc), exc) from exc

        text = (result.text or "").strip()
        if not text:
            raise _TurnFailed(ErrorKind.EMPTY_RESULT, EmptyResult("Transcription returned no text"))

        self._log.info(f"user said: {text}")
        return text

    async def _dispatch(self, text: str) -> Reply:
        self._set_mode(Mode.DISPATCHING)
        self._events.status(STATUS_DISPATCHING)
        try:
            reply = await self._responder.respond(text, self._session_id)
        except EmptyResult as exc:
            self._log.warning(f"{exc}; using fallback reply")
            return Reply(text=self._fallback_reply)
        except Exception as exc:
            raise _TurnFailed(ErrorKind.UPSTREAM_UNREACHABLE, exc) from exc

        if not (reply.text or "").strip():
            self._log.warning("empty reply; using fallback reply")
            return Reply(text=self._fallback_reply)

        self._log.info(f"JARVIS replied: {reply.text[:100]}")
        return reply

    async def _speak(self, reply: Reply) -> bool:
        """Play the reply. Return True if the user cut it off."""
        self._retire_playback()
        self._pending_reply = reply
        self._interrupt_requested = asyncio.Event()
        self._set_mode(Mode.SPEAKING)
        self._events.status(STATUS_RESPONDING)

        try:
            handle = await self._playback.play(reply.audio_url)
        except Exception as exc:
            self._log.warning(f"playback failed to start: {exc}")
            self._flush_reply(keep_audio=True)
            return False

        self._state.active_playback = handle
        self._start_interruption_watch()

        interrupted = await self._wait_for_playback(handle)

        self._retire_playback()
        await self._stop_interruption_watch()

        if interrupted:
            self._log.info("playback interrupted by the user")
            self._flush_reply(keep_audio=False)
            return True

        if handle.outcome is PlaybackOutcome.ERRORED:
            self._log.warning(f"{PlaybackError.__name__} while playing {handle.audio_url}")
        self._flush_reply(keep_audio=True)
        return False

    async def _wait_for_playback(self, handle: PlaybackHandle) -> bool:
        """Return True if an interruption arrived before playback finished."""
        finished = asyncio.ensure_future(handle.wait())
        interrupted = asyncio.ensure_future(self._interrupt_requested.wait())
        try:
            done, _ = await asyncio.wait(
                {finished, interrupted},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            finished.cancel()
            interrupted.cancel()
        return interrupted in done and finished not in done

    async def _complete_turn(self, status: Optional[str] = None) -> None:
        self._set_mode(Mode.IDLE)
        if not self._state.conversation_mode_enabled:
            self._events.status(status or STATUS_READY)
            return

        # "listening" is only announced once the microphone is really open
        if status is not None:
            self._events.status(status)
        await asyncio.sleep(self._settle_delay)
        if self._state.conversation_mode_enabled and self._state.mode is Mode.IDLE and not self._ending:
            self._open_microphone(STATUS_LISTENING)

    async def _soft_fail(self, exc: BaseException) -> None:
        self._log.info(f"nothing to answer ({exc})")
        await self._complete_turn(STATUS_NOT_HEARD)

    async def _fail(self, kind: ErrorKind, exc: BaseException) -> None:
        self._log.warning(f"{kind.value} while {self._state.mode.value}: {exc}")
        self._state.conversation_mode_enabled = False
        self._retire_playback()
        self._cancel_interruption_watch()
        await self._release_microphone()
        if not self._set_mode(Mode.IDLE):
            self._emit_state()

        self._events.status(STATUS_MIC_DENIED if kind is ErrorKind.DEVICE else STATUS_ERROR)
        notification = _NOTIFICATIONS.get(kind)
        if notification is not None:
            title, message = notification
            self._events.notify(kind.value, title, message)

    async def _release_microphone(self) -> None:
        handle, self._capture_handle = self._capture_handle, None
        if handle is None or handle.ended:
            return
        try:
            await self._capture.end(handle)
        except DeviceError as exc:
            self._log.warning(f"releasing microphone failed: {exc}")

    def _retire_playback(self) -> None:
        handle = self._state.active_playback
        self._state.active_playback = None
        if handle is not None and handle.is_live:
            self._playback.stop(handle)

    def _start_interruption_watch(self) -> None:
        if self._recognizer is None:
            return
        self._cancel_interruption_watch()
        self._recognizer_generation += 1
        generation = self._recognizer_generation
        task = asyncio.create_task(
            self._watch_for_interruption(generation),
            name=f"jarvis-interrupt-{self._session_id}-{generation}",
        )
        task.add_done_callback(self._log_task_failure)
        self._recognizer_task = Running(task=task, generation=generation)

    def _cancel_interruption_watch(self) -> Optional[asyncio.Task]:
        current = self._recognizer_task
        self._recognizer_task = NOT_RUNNING
        if isinstance(current, Running):
            current.task.cancel()
            return current.task
        return None

    async def _stop_interruption_watch(self) -> None:
        task = self._cancel_interruption_watch()
        if task is not None and not task.done() and task is not asyncio.current_task():
            await asyncio.wait({task})

    def _watch_is_current(self, generation: int) -> bool:
        current = self._recognizer_task
        return (
            isinstance(current, Running)
            and current.generation == generation
            and self._state.mode is Mode.SPEAKING
        )

    async def _watch_for_interruption(self, generation: int) -> None:
        while self._watch_is_current(generation):
            try:
                async with contextlib.aclosing(self._recognizer.listen()) as results:
                    async for result in results:
                        if not self._watch_is_current(generation):
                            return
                        if self._policy.is_interruption(result):
                            self._log.info(
                                f"interruption detected: {result.text!r} (confidence: {result.confidence})"
                            )
                            self._interrupt_requested.set()
                            return
                        self._log.debug(f"ignoring {result.text!r}")
            except Exception as exc:
                self._log.warning(f"interruption recognizer error: {exc}")

            if not self._watch_is_current(generation):
                return
            self._log.debug("restarting interruption recognizer")
            await asyncio.sleep(self._recognizer_restart_delay)

    def _flush_reply(self, keep_audio: bool) -> None:
        reply, self._pending_reply = self._pending_reply, None
        if reply is None:
            return
        self._record(Turn.assistant(reply.text, reply.audio_url if keep_audio else None))

    def _record(self, turn: Turn) -> None:
        self._store.append(self._session_id, turn)
        self._events.turn_added(turn)

    def _set_mode(self, mode: Mode) -> bool:
        if mode is not Mode.SPEAKING and self._state.active_playback is not None:
            raise RuntimeError("Playback must be retired before leaving the speaking state")
        previous = self._state.mode
        if previous is mode:
            return False
        if previous is Mode.SPEAKING:
            self._cancel_interruption_watch()
        self._state.mode = mode
        self._log.debug(f"{previous.value} -> {mode.value}")
        self._emit_state()
        return True

    def _emit_state(self) -> None:
        self._events.state_changed(self._state.mode.value, self._state.conversation_mode_enabled)

    def _log_task_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error(f"task {task.get_name()} crashed: {exc!r}", exc_info=exc)
