import pytest
from datetime import datetime, timedelta, UTC

from src.models.conversation import Turn
from src.services.session_manager import SessionManager, Session
from src.services.transcript_store import TranscriptStore
from src.core.exceptions import SessionError


def test_open_session_registers_client_id(session_manager):
    session = session_manager.open_session("session_abc")

    assert session.session_id == "session_abc"
    assert isinstance(session.created_at, datetime)
    assert session_manager.open_session("session_abc") is session
    assert session_manager.get_active_session_count() == 1


def test_open_session_without_id_generates_one(session_manager):
    session = session_manager.open_session()

    assert session.session_id.startswith("session_")
    assert session_manager.get_session(session.session_id) is session


def test_open_session_rejects_blank_id(session_manager):
    with pytest.raises(SessionError):
        session_manager.open_session("   ")


def test_open_session_touches_and_merges_metadata(session_manager):
    session = session_manager.open_session("session_abc", {"transport": "http"})
    session.last_active = datetime.now(UTC) - timedelta(seconds=600)

    session_manager.open_session("session_abc", {"transport": "websocket"})

    assert session.idle_seconds() < 5
    assert session.metadata == {"transport": "websocket"}


def test_attached_session_never_expires():
    manager = SessionManager(session_timeout=10)
    session = manager.attach("session_ws")
    session.last_active = datetime.now(UTC) - timedelta(seconds=20)

    assert manager.cleanup_expired_sessions() == 0

    manager.detach("session_ws")
    assert session.connections == 0
    session.last_active = datetime.now(UTC) - timedelta(seconds=20)

    assert manager.cleanup_expired_sessions() == 1


def test_detach_unknown_session_is_ignored(session_manager):
    session_manager.detach("nobody")

    assert session_manager.get_active_session_count() == 0


def test_delete_session_notifies_listeners(session_manager):
    deleted = []
    session_manager.on_delete(deleted.append)
    session = session_manager.open_session("session_abc")

    assert session_manager.delete_session(session.session_id) is True
    assert session_manager.delete_session(session.session_id) is False
    assert deleted == ["session_abc"]


def test_session_is_expired():
    session = Session(session_id="test-id")

    assert not session.is_expired(timeout_seconds=3600)

    session.last_active = datetime.now(UTC) - timedelta(seconds=7200)

    assert session.is_expired(timeout_seconds=3600)


def test_cleanup_expired_sessions_drops_transcripts():
    manager = SessionManager(session_timeout=10)
    store = TranscriptStore()
    manager.on_delete(store.clear)

    stale = manager.open_session("stale")
    fresh = manager.open_session("fresh")
    store.append("stale", Turn.user("hello"))
    store.append("fresh", Turn.user("hi"))

    stale.last_active = datetime.now(UTC) - timedelta(seconds=20)

    count = manager.cleanup_expired_sessions()

    assert count == 1
    assert manager.get_session(stale.session_id) is None
    assert manager.get_session(fresh.session_id) is not None
    assert store.get_turns("stale") == []
    assert [turn.text for turn in store.get_turns("fresh")] == ["hi"]
