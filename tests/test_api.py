import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from src.agent.collaborators import Reply
from src.api.main import app
from src.core.dependencies import DependencyContainer, get_container
from src.core.exceptions import EmptyUpstreamResponse, UpstreamTimeout, UpstreamUnreachable
from src.core.settings import settings
from src.models.voice.types import TranscriptionResult
from src.services.audio_store import AudioStore
from src.services.conversation_service import ConversationService
from src.services.transcription_service import TranscriptionService


@pytest.fixture
def container(tmp_path):
    container = DependencyContainer()
    container._audio_store = AudioStore(str(tmp_path / "uploads"))

    transcription = AsyncMock(spec=TranscriptionService)
    transcription.transcribe.return_value = TranscriptionResult(text="turn on the lights", duration_ms=1500)
    container._transcription_service = transcription

    conversation = AsyncMock(spec=ConversationService)
    conversation.respond.return_value = Reply(text="Lights on, sir.", audio_url="/api/audio/jarvis_1_ab.mp3")
    container._conversation_service = conversation
    return container


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_transcribe(client, container, sample_audio_bytes):
    response = client.post(
        "/api/transcribe",
        content=sample_audio_bytes,
        headers={"Content-Type": "audio/webm;codecs=opus"},
    )

    assert response.status_code == 200
    assert response.json() == {"text": "turn on the lights", "durationMs": 1500}
    recording = container._transcription_service.transcribe.await_args.args[0]
    assert recording.data == sample_audio_bytes
    assert recording.content_type == "audio/webm;codecs=opus"


def test_transcribe_rejects_empty_body(client):
    response = client.post("/api/transcribe", content=b"", headers={"Content-Type": "audio/webm"})

    assert response.status_code == 400


def test_transcribe_rejects_large_body(client, monkeypatch):
    monkeypatch.setattr(settings.api, "MAX_AUDIO_BYTES", 4)

    response = client.post("/api/transcribe", content=b"12345", headers={"Content-Type": "audio/webm"})

    assert response.status_code == 413


def test_transcribe_rejects_unsupported_type(client, container):
    response = client.post("/api/transcribe", content=b"12345", headers={"Content-Type": "text/plain"})

    assert response.status_code == 415
    container._transcription_service.transcribe.assert_not_called()


@pytest.mark.parametrize("error, status", [(UpstreamUnreachable("down"), 502), (UpstreamTimeout("slow"), 504)])
def test_transcribe_upstream_errors(client, container, error, status):
    container._transcription_service.transcribe.side_effect = error

    response = client.post("/api/transcribe", content=b"12345", headers={"Content-Type": "audio/wav"})

    assert response.status_code == status


def test_jarvis_records_both_turns(client, container):
    response = client.post("/api/jarvis", json={"message": "lights on", "sessionId": "session_1"})

    assert response.status_code == 200
    assert response.json() == {"text": "Lights on, sir.", "audioUrl": "/api/audio/jarvis_1_ab.mp3"}
    container._conversation_service.respond.assert_awaited_once_with("lights on", "session_1")

    turns = client.get("/api/conversations/session_1").json()
    assert [(turn["role"], turn["text"]) for turn in turns] == [
        ("user", "lights on"),
        ("assistant", "Lights on, sir."),
    ]
    assert turns[1]["audioUrl"] == "/api/audio/jarvis_1_ab.mp3"


def test_jarvis_falls_back_on_empty_reply(client, container):
    container._conversation_service.respond.side_effect = EmptyUpstreamResponse("nothing")

    response = client.post("/api/jarvis", json={"message": "hello", "sessionId": "session_1"})

    assert response.status_code == 200
    assert response.json()["text"] == settings.workflow.FALLBACK_REPLY
    assert response.json()["audioUrl"] is None


def test_jarvis_upstream_failure(client, container):
    container._conversation_service.respond.side_effect = UpstreamTimeout("slow")

    response = client.post("/api/jarvis", json={"message": "hello", "sessionId": "session_1"})

    assert response.status_code == 504
    turns = client.get("/api/conversations/session_1").json()
    assert [turn["role"] for turn in turns] == ["user"]


def test_jarvis_validates_body(client):
    response = client.post("/api/jarvis", json={"message": "", "sessionId": "session_1"})

    assert response.status_code == 422


def test_get_audio(client, container):
    filename = container.get_audio_store().save(b"ID3mp3")

    response = client.get(f"/api/audio/{filename}")

    assert response.status_code == 200
    assert response.content == b"ID3mp3"
    assert response.headers["content-type"] == "audio/mpeg"


def test_get_audio_not_found(client):
    assert client.get("/api/audio/jarvis_1_ab.mp3").status_code == 404
    assert client.get("/api/audio/settings.py").status_code == 404


def test_unknown_conversation_is_empty(client):
    response = client.get("/api/conversations/nobody")

    assert response.status_code == 200
    assert response.json() == []
