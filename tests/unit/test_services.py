import json

import httpx
import pytest
from unittest.mock import AsyncMock

from src.agent.graph import create_response_graph
from src.services.audio_service import AudioService
from src.services.audio_store import AudioStore
from src.services.conversation_service import ConversationService
from src.services.transcript_store import TranscriptStore
from src.services.transcription_service import TranscriptionService
from src.services.tts_service import TTSService
from src.services.workflow_service import WorkflowService, extract_reply_text
from src.core.exceptions import (
    ConfigurationError,
    EmptyAudio,
    EmptyUpstreamResponse,
    SessionError,
    TTSError,
    UnsupportedFormat,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from src.models.conversation import Role, Turn
from src.models.voice.types import Recording, TranscriptionResult


def test_audio_service_add_chunk():
    service = AudioService()

    service.add_chunk(b"chunk1")
    service.add_chunk(b"")
    service.add_chunk(b"chunk2")

    assert service.get_chunk_count() == 2
    assert service.get_size_bytes() == 12


def test_audio_service_drain():
    service = AudioService("audio/webm")

    service.add_chunk(b"ab")
    service.add_chunk(b"cd")

    assert service.drain() == b"abcd"
    assert service.get_chunk_count() == 0


def test_audio_service_reset():
    service = AudioService("audio/webm")
    service.add_chunk(b"ab")

    service.reset("audio/ogg")

    assert service.get_chunk_count() == 0
    assert service.content_type == "audio/ogg"


def test_transcript_store_keeps_order_per_session():
    store = TranscriptStore()

    store.append("a", Turn.user("first"))
    store.append("b", Turn.user("other"))
    store.append("a", Turn.assistant("second", "/api/audio/x.mp3"))

    turns = store.get_turns("a")
    assert [turn.text for turn in turns] == ["first", "second"]
    assert turns[1].role is Role.ASSISTANT
    assert store.get_session_count() == 2


def test_transcript_store_returns_copies():
    store = TranscriptStore()
    store.append("a", Turn.user("first"))

    store.get_turns("a").clear()

    assert len(store.get_turns("a")) == 1


def test_transcript_store_requires_session():
    with pytest.raises(SessionError):
        TranscriptStore().append("", Turn.user("first"))


def test_audio_store_save_and_resolve(tmp_path):
    store = AudioStore(str(tmp_path / "uploads"))

    filename = store.save(b"mp3-bytes")

    assert filename.startswith("jarvis_") and filename.endswith(".mp3")
    assert store.path_for(filename).read_bytes() == b"mp3-bytes"
    assert store.url_for(filename) == f"/api/audio/{filename}"


def test_audio_store_rejects_foreign_names(tmp_path):
    store = AudioStore(str(tmp_path))
    (tmp_path / "secret.txt").write_text("nope")

    assert store.path_for("secret.txt") is None
    assert store.path_for("../secret.txt") is None
    assert store.path_for("jarvis_1_abcd.mp3") is None


@pytest.mark.asyncio
async def test_transcription_service_empty_audio(mock_transcription_provider):
    service = TranscriptionService(mock_transcription_provider)

    with pytest.raises(EmptyAudio):
        await service.transcribe(Recording(data=b"", content_type="audio/webm"))

    mock_transcription_provider.speech_to_text.assert_not_called()


@pytest.mark.asyncio
async def test_transcription_service_passes_domain_errors(mock_transcription_provider, sample_audio_bytes):
    mock_transcription_provider.speech_to_text.side_effect = UnsupportedFormat("bad")
    service = TranscriptionService(mock_transcription_provider)

    with pytest.raises(UnsupportedFormat):
        await service.transcribe(Recording(data=sample_audio_bytes, content_type="audio/webm"))


@pytest.mark.asyncio
async def test_transcription_service_wraps_unexpected_errors(mock_transcription_provider, sample_audio_bytes):
    mock_transcription_provider.speech_to_text.side_effect = RuntimeError("socket closed")
    service = TranscriptionService(mock_transcription_provider)

    with pytest.raises(UpstreamUnreachable):
        await service.transcribe(Recording(data=sample_audio_bytes, content_type="audio/webm"))


@pytest.mark.asyncio
async def test_transcription_service_returns_result(mock_transcription_provider, sample_audio_bytes):
    mock_transcription_provider.speech_to_text.return_value = TranscriptionResult(text="lights on", duration_ms=900)
    service = TranscriptionService(mock_transcription_provider)

    result = await service.transcribe(Recording(data=sample_audio_bytes, content_type="audio/webm"))

    assert result.text == "lights on"


@pytest.mark.asyncio
async def test_tts_service_empty_text(mock_speech_provider, tmp_path):
    service = TTSService(mock_speech_provider, AudioStore(str(tmp_path)))

    with pytest.raises(TTSError):
        await service.generate_speech("   ")


@pytest.mark.asyncio
async def test_tts_service_wraps_unexpected_errors(mock_speech_provider, tmp_path):
    mock_speech_provider.text_to_speech.side_effect = RuntimeError("boom")
    service = TTSService(mock_speech_provider, AudioStore(str(tmp_path)))

    with pytest.raises(TTSError):
        await service.generate_speech("Hello, sir.")


@pytest.mark.asyncio
async def test_tts_service_synthesize_to_url(mock_speech_provider, tmp_path):
    mock_speech_provider.text_to_speech.return_value = b"mp3"
    store = AudioStore(str(tmp_path))
    service = TTSService(mock_speech_provider, store)

    url = await service.synthesize_to_url("Hello, sir.")

    filename = url.rsplit("/", 1)[-1]
    assert url.startswith("/api/audio/jarvis_")
    assert store.path_for(filename).read_bytes() == b"mp3"


@pytest.mark.parametrize(
    "body, expected",
    [
        ("  The lights are on, sir. ", "The lights are on, sir."),
        (json.dumps({"output": "Done."}), "Done."),
        (json.dumps([{"response": "Listed."}]), "Listed."),
        (json.dumps({"message": "Hi.", "text": "Text wins."}), "Text wins."),
        (json.dumps("quoted"), "quoted"),
        (json.dumps({"unrelated": 1}), ""),
        ("", ""),
        ("null", ""),
        ("true", ""),
        ("42", ""),
        ("[]", ""),
    ],
)
def test_extract_reply_text(body, expected):
    assert extract_reply_text(body) == expected


def _workflow(handler) -> WorkflowService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WorkflowService("https://n8n.example/webhook/jarvis", timeout_s=5, client=client)


@pytest.mark.asyncio
async def test_workflow_service_posts_query_and_session():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text="It is 9 PM, sir.")

    reply = await _workflow(handler).run("what time is it", "session_1")

    assert reply == "It is 9 PM, sir."
    assert seen["body"] == {"query": "what time is it", "sessionId": "session_1"}


@pytest.mark.asyncio
async def test_workflow_service_http_error():
    service = _workflow(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(UpstreamUnreachable):
        await service.run("hello", "s")


@pytest.mark.asyncio
async def test_workflow_service_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(UpstreamTimeout):
        await _workflow(handler).run("hello", "s")


@pytest.mark.asyncio
async def test_workflow_service_empty_reply():
    with pytest.raises(EmptyUpstreamResponse):
        await _workflow(lambda request: httpx.Response(200, text="   ")).run("hello", "s")


@pytest.mark.asyncio
async def test_workflow_service_null_reply_is_empty():
    with pytest.raises(EmptyUpstreamResponse):
        await _workflow(lambda request: httpx.Response(200, text="null")).run("hello", "s")


@pytest.mark.asyncio
async def test_workflow_service_requires_url():
    with pytest.raises(ConfigurationError):
        await WorkflowService(None).run("hello", "s")


@pytest.mark.asyncio
async def test_response_graph_speaks_reply():
    workflow = AsyncMock(spec=WorkflowService)
    workflow.run.return_value = "Done, sir."
    tts = AsyncMock(spec=TTSService)
    tts.synthesize_to_url.return_value = "/api/audio/jarvis_1_ab.mp3"

    service = ConversationService(create_response_graph(workflow, tts, "fallback"))
    reply = await service.respond("lights on", "s1")

    assert reply.text == "Done, sir."
    assert reply.audio_url == "/api/audio/jarvis_1_ab.mp3"
    workflow.run.assert_awaited_once_with("lights on", "s1")


@pytest.mark.asyncio
async def test_response_graph_keeps_text_when_tts_fails():
    workflow = AsyncMock(spec=WorkflowService)
    workflow.run.return_value = "Done, sir."
    tts = AsyncMock(spec=TTSService)
    tts.synthesize_to_url.side_effect = TTSError("quota")

    reply = await ConversationService(create_response_graph(workflow, tts, "fallback")).respond("x", "s1")

    assert reply.text == "Done, sir."
    assert reply.audio_url is None


@pytest.mark.asyncio
async def test_response_graph_uses_fallback_for_empty_reply():
    workflow = AsyncMock(spec=WorkflowService)
    workflow.run.side_effect = EmptyUpstreamResponse("nothing")
    tts = AsyncMock(spec=TTSService)
    tts.synthesize_to_url.return_value = "/api/audio/jarvis_1_ab.mp3"

    reply = await ConversationService(create_response_graph(workflow, tts, "Say again?")).respond("x", "s1")

    assert reply.text == "Say again?"
    tts.synthesize_to_url.assert_awaited_once_with("Say again?")


@pytest.mark.asyncio
async def test_response_graph_without_speech():
    workflow = AsyncMock(spec=WorkflowService)
    workflow.run.return_value = "Done, sir."

    reply = await ConversationService(
        create_response_graph(workflow, None, "fallback", speak_replies=False)
    ).respond("x", "s1")

    assert reply.audio_url is None


@pytest.mark.asyncio
async def test_conversation_service_passes_upstream_errors():
    workflow = AsyncMock(spec=WorkflowService)
    workflow.run.side_effect = UpstreamTimeout("slow")

    with pytest.raises(UpstreamTimeout):
        await ConversationService(create_response_graph(workflow, None, "fallback")).respond("x", "s1")
