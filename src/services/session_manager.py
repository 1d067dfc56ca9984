import uuid
from datetime import datetime, UTC
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field

from src.core.logger import logger
from src.core.exceptions import SessionError


@dataclass
class Session:
    session_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_active: datetime = field(default_factory=lambda: datetime.now(UTC))
    connections: int = 0
    metadata: Dict = field(default_factory=dict)

    def touch(self) -> None:
        self.last_active = datetime.now(UTC)

    def idle_seconds(self) -> float:
        return (datetime.now(UTC) - self.last_active).total_seconds()

    def is_expired(self, timeout_seconds: int = 3600) -> bool:
        # A session with an open websocket never expires.
        return self.connections == 0 and self.idle_seconds() > timeout_seconds


class SessionManager:
    """Tracks client sessions and notifies listeners when one is dropped.

    Session ids are chosen by the client (``session_<ms>_<random>``); the
    server only registers them on first use. Text clients touch a session per
    request, websocket clients attach for the lifetime of the connection.
    """

    def __init__(self, session_timeout: int = 3600):
        self._sessions: Dict[str, Session] = {}
        self._session_timeout = session_timeout
        self._on_delete: List[Callable[[str], None]] = []

    def on_delete(self, callback: Callable[[str], None]) -> None:
        self._on_delete.append(callback)

    def open_session(self, session_id: Optional[str] = None, metadata: Optional[Dict] = None) -> Session:
        """Return the session for a client-chosen id, registering it on first use."""
        if session_id is None:
            session_id = f"session_{uuid.uuid4().hex}"
        elif not session_id.strip():
            raise SessionError("Session id must not be blank")

        session = self.get_session(session_id)
        if session is None:
            session = Session(session_id=session_id, metadata=metadata or {})
            self._sessions[session_id] = session
            logger.info(f"Registered session: {session_id}")
        elif metadata:
            session.metadata.update(metadata)
        return session

    def attach(self, session_id: Optional[str] = None, metadata: Optional[Dict] = None) -> Session:
        session = self.open_session(session_id, metadata)
        session.connections += 1
        return session

    def detach(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.connections = max(0, session.connections - 1)
        session.touch()

    def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session:
            session.touch()
        return session

    def delete_session(self, session_id: str) -> bool:
        if self._sessions.pop(session_id, None) is None:
            return False

        logger.info(f"Deleted session: {session_id}")
        for callback in self._on_delete:
            callback(session_id)
        return True

    def cleanup_expired_sessions(self) -> int:
        expired_ids = [
            sid for sid, session in self._sessions.items()
            if session.is_expired(self._session_timeout)
        ]

        for sid in expired_ids:
            self.delete_session(sid)

        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired sessions")

        return len(expired_ids)

    def get_active_session_count(self) -> int:
        return len(self._sessions)
