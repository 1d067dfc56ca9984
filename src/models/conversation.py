"""Transcript entries shared by the orchestrator, the store and the API."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    role: Role
    text: str
    audio_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    turn_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role=Role.USER, text=text)

    @classmethod
    def assistant(cls, text: str, audio_url: Optional[str] = None) -> "Turn":
        return cls(role=Role.ASSISTANT, text=text, audio_url=audio_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.turn_id,
            "role": self.role.value,
            "text": self.text,
            "audioUrl": self.audio_url,
            "createdAt": self.created_at.isoformat(),
        }
