"""Conversation state owned by the orchestrator."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from src.agent.collaborators import PlaybackHandle


class Mode(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    DISPATCHING = "dispatching"
    SPEAKING = "speaking"


@dataclass
class ConversationState:
    """Mutable orchestrator state.

    Attributes:
        mode: Where the current turn is
        conversation_mode_enabled: Re-open the microphone after each turn
        active_playback: The one live playback, only ever set while speaking
    """

    mode: Mode = Mode.IDLE
    conversation_mode_enabled: bool = False
    active_playback: Optional[PlaybackHandle] = None


@dataclass(frozen=True)
class NotRunning:
    pass


@dataclass(frozen=True)
class Running:
    task: asyncio.Task
    generation: int


RecognizerTask = Union[NotRunning, Running]

NOT_RUNNING = NotRunning()
