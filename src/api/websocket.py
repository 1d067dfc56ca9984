import asyncio
import base64
import binascii
from typing import Optional, Set

from fastapi import WebSocket

from src.agent.collaborators import ConversationEvents, PlaybackOutcome
from src.agent.orchestrator import ConversationOrchestrator
from src.api.client_devices import (
    ClientAudioCapture,
    ClientChannel,
    ClientPlayback,
    ClientSpeechRecognizer,
)
from src.core.dependencies import DependencyContainer
from src.core.logger import logger
from src.core.settings import settings
from src.models.conversation import Turn
from src.services.session_manager import Session


class WebSocketEvents(ConversationEvents):
    """Forwards orchestrator notifications to the client."""

    def __init__(self, channel: ClientChannel):
        self._channel = channel

    def state_changed(self, mode: str, conversation_mode: bool) -> None:
        self._channel.send({"type": "state", "mode": mode, "conversationMode": conversation_mode})

    def status(self, text: str) -> None:
        self._channel.send({"type": "status", "text": text})

    def notify(self, kind: str, title: str, message: str) -> None:
        self._channel.send({"type": "notification", "kind": kind, "title": title, "message": message})

    def turn_added(self, turn: Turn) -> None:
        self._channel.send({"type": "turn", "turn": turn.to_dict()})


class VoiceWebSocketHandler:
    def __init__(self, websocket: WebSocket, container: DependencyContainer):
        self.websocket = websocket
        self._container = container
        self._session: Optional[Session] = None

        self._channel: Optional[ClientChannel] = None
        self._capture: Optional[ClientAudioCapture] = None
        self._playback: Optional[ClientPlayback] = None
        self._recognizer: Optional[ClientSpeechRecognizer] = None
        self.orchestrator: Optional[ConversationOrchestrator] = None

        self._sender_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id if self._session else None

    async def connect(self, session_id: Optional[str] = None):
        await self.websocket.accept()
        logger.info("WebSocket connection accepted")

        self._session = self._container.get_session_manager().attach(session_id, {"transport": "websocket"})
        logger.info(f"Session opened: {self._session.session_id}")

        conversation = settings.conversation
        self._channel = ClientChannel()
        self._capture = ClientAudioCapture(self._channel, timeout_s=conversation.CLIENT_DEVICE_TIMEOUT_S)
        self._playback = ClientPlayback(self._channel)
        self._recognizer = ClientSpeechRecognizer(self._channel)

        self.orchestrator = ConversationOrchestrator(
            session_id=self._session.session_id,
            capture=self._capture,
            transcriber=self._container.get_transcription_service(),
            responder=self._container.get_conversation_service(),
            playback=self._playback,
            store=self._container.get_transcript_store(),
            recognizer=self._recognizer if conversation.INTERRUPTIONS_ENABLED else None,
            events=WebSocketEvents(self._channel),
            policy=self._container.get_interruption_policy(),
            tracer=self._container.get_turn_tracer(self._session.session_id),
            settle_delay=conversation.SETTLE_DELAY_S,
            recognizer_restart_delay=conversation.RECOGNIZER_RESTART_DELAY_S,
            fallback_reply=settings.workflow.FALLBACK_REPLY,
        )

        self._sender_task = asyncio.create_task(self._pump_outgoing())
        self._channel.send({"type": "ready", "sessionId": self._session.session_id})
        self._channel.send({
            "type": "state",
            "mode": self.orchestrator.mode.value,
            "conversationMode": self.orchestrator.conversation_mode_enabled,
        })
        logger.info("Orchestrator initialized")

    async def disconnect(self):
        if self.orchestrator:
            if self._channel:
                self._channel.close()
            await self.orchestrator.shutdown()

        pending = {task for task in self._background if not task.done()}
        if self._sender_task is not None:
            pending.add(self._sender_task)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

        if self._session:
            self._container.get_session_manager().detach(self._session.session_id)

        logger.info("WebSocket connection closed")

    async def send_json(self, data: dict):
        try:
            await self.websocket.send_json(data)
        except Exception as e:
            logger.error(f"Error sending JSON: {e}")

    async def send_error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    async def _pump_outgoing(self):
        while True:
            message = await self._channel.next_outgoing()
            await self.send_json(message)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def handle_conversation(self):
        while True:
            data = await self.websocket.receive_json()
            self.handle_message(data)

    def handle_message(self, data: dict) -> None:
        msg_type = data.get("type")
        orchestrator = self.orchestrator

        if msg_type == "start_turn":
            if not orchestrator.start_turn():
                self._channel.send({"type": "error", "message": "A turn is already in progress"})

        elif msg_type == "start_conversation":
            orchestrator.start_conversation()

        elif msg_type == "stop_listening":
            orchestrator.stop_listening()

        elif msg_type == "interrupt":
            orchestrator.interrupt()

        elif msg_type == "end_turn":
            # the receive loop must keep running so the client can confirm the mic stop
            self._spawn(orchestrator.end_turn())

        elif msg_type == "capture_started":
            self._capture.on_capture_started(data.get("id", ""), data.get("contentType"))

        elif msg_type == "capture_error":
            self._capture.on_capture_error(data.get("id", ""), data.get("reason", "unavailable"))

        elif msg_type == "audio":
            try:
                chunk = base64.b64decode(data.get("data", ""), validate=True)
            except (binascii.Error, ValueError):
                logger.warning("Received malformed audio chunk")
                self._channel.send({"type": "error", "message": "Malformed audio chunk"})
                return
            self._capture.on_audio(chunk)

        elif msg_type == "speech_ended":
            self._capture.on_speech_ended()

        elif msg_type == "capture_stopped":
            self._capture.on_capture_stopped(data.get("id", ""), data.get("contentType"))

        elif msg_type == "playback_ended":
            self._playback.on_client_event(data.get("id", ""), PlaybackOutcome.ENDED)

        elif msg_type == "playback_error":
            self._playback.on_client_event(data.get("id", ""), PlaybackOutcome.ERRORED)

        elif msg_type == "recognition":
            self._recognizer.on_result(
                data.get("text", ""),
                confidence=data.get("confidence"),
                is_final=data.get("final", True),
            )

        elif msg_type == "recognition_ended":
            self._recognizer.on_end()

        else:
            logger.warning(f"Unknown message type: {msg_type}")
            self._channel.send({"type": "error", "message": f"Unknown message type: {msg_type}"})
