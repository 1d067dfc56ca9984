from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from src.api.schemas import (
    JarvisRequest,
    JarvisResponse,
    TranscribeResponse,
    TurnResponse,
)
from src.api.websocket import VoiceWebSocketHandler
from src.core.dependencies import DependencyContainer, get_container
from src.core.exceptions import (
    EmptyAudio,
    EmptyResult,
    JarvisError,
    SessionError,
    UnsupportedFormat,
    UpstreamTimeout,
)
from src.core.logger import logger
from src.core.settings import settings
from src.models.conversation import Turn
from src.models.voice.types import AudioFormat, Recording

app = FastAPI(
    title="JARVIS Voice Assistant API",
    description="Voice conversations with an n8n workflow, over HTTP and WebSocket",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _to_http_error(exc: JarvisError) -> HTTPException:
    if isinstance(exc, EmptyAudio):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UnsupportedFormat):
        return HTTPException(status_code=415, detail=str(exc))
    if isinstance(exc, SessionError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UpstreamTimeout):
        return HTTPException(status_code=504, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "jarvis",
        "version": "0.1.0",
    }


@app.post("/api/transcribe", response_model=TranscribeResponse)
async def transcribe_audio(request: Request, container: DependencyContainer = Depends(get_container)):
    content_type = request.headers.get("content-type", "")
    data = await request.body()

    if not data:
        raise HTTPException(status_code=400, detail="No audio file provided")
    if len(data) > settings.api.MAX_AUDIO_BYTES:
        raise HTTPException(status_code=413, detail="Audio file too large")

    try:
        AudioFormat.from_content_type(content_type)
        result = await container.get_transcription_service().transcribe(
            Recording(data=data, content_type=content_type)
        )
    except JarvisError as e:
        logger.error(f"Error transcribing audio: {e}")
        raise _to_http_error(e) from e

    return TranscribeResponse(text=result.text, duration_ms=result.duration_ms)


@app.post("/api/jarvis", response_model=JarvisResponse)
async def ask_jarvis(body: JarvisRequest, container: DependencyContainer = Depends(get_container)):
    store = container.get_transcript_store()
    try:
        container.get_session_manager().open_session(body.session_id, {"transport": "http"})
    except SessionError as e:
        raise _to_http_error(e) from e

    store.append(body.session_id, Turn.user(body.message))

    try:
        reply = await container.get_conversation_service().respond(body.message, body.session_id)
    except EmptyResult:
        text, audio_url = settings.workflow.FALLBACK_REPLY, None
    except JarvisError as e:
        logger.error(f"Error processing JARVIS request: {e}")
        raise _to_http_error(e) from e
    else:
        text = reply.text if reply.text.strip() else settings.workflow.FALLBACK_REPLY
        audio_url = reply.audio_url

    store.append(body.session_id, Turn.assistant(text, audio_url))
    return JarvisResponse(text=text, audio_url=audio_url)


@app.get("/api/audio/{filename}")
async def get_audio(filename: str, container: DependencyContainer = Depends(get_container)):
    path = container.get_audio_store().path_for(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="Audio file not found")
    return FileResponse(path, media_type="audio/mpeg")


@app.get("/api/conversations/{session_id}", response_model=List[TurnResponse])
async def get_conversation(session_id: str, container: DependencyContainer = Depends(get_container)):
    """Turns of one session, oldest first."""
    turns = container.get_transcript_store().get_turns(session_id)
    return [TurnResponse(**turn.to_dict()) for turn in turns]


@app.websocket("/ws/voice")
async def websocket_voice_endpoint(
    websocket: WebSocket,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    container: DependencyContainer = Depends(get_container),
):
    handler = VoiceWebSocketHandler(websocket, container)

    try:
        await handler.connect(session_id)
        await handler.handle_conversation()
    except WebSocketDisconnect:
        logger.info("Client disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        await handler.send_error(str(e))
    finally:
        await handler.disconnect()


@app.on_event("startup")
async def startup_event():
    logger.info("Starting JARVIS API...")
    logger.info(f"Transcription provider: {settings.voice.TRANSCRIPTION_PROVIDER}")
    logger.info(f"Speech provider: {settings.voice.SPEECH_PROVIDER}")
    if not settings.workflow.N8N_WEBHOOK_URL:
        logger.warning("N8N_WEBHOOK_URL is not set; commands will fail until it is configured")
    await get_container().startup()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down JARVIS API...")
    await get_container().shutdown()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        workers=settings.api.API_WORKERS,
        reload=True,
    )
