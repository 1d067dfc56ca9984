from typing import Dict, List

from src.core.exceptions import SessionError
from src.core.logger import logger
from src.models.conversation import Turn


class TranscriptStore:
    """Append-only, per-session turn log kept in memory."""

    def __init__(self):
        self._turns: Dict[str, List[Turn]] = {}

    def append(self, session_id: str, turn: Turn) -> Turn:
        if not session_id:
            raise SessionError("Session id is required")
        self._turns.setdefault(session_id, []).append(turn)
        logger.debug(f"Session {session_id}: recorded {turn.role.value} turn")
        return turn

    def get_turns(self, session_id: str) -> List[Turn]:
        return list(self._turns.get(session_id, []))

    def clear(self, session_id: str) -> bool:
        if session_id in self._turns:
            del self._turns[session_id]
            logger.info(f"Dropped transcript for session: {session_id}")
            return True
        return False

    def get_session_count(self) -> int:
        return len(self._turns)
