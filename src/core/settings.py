import json
from pathlib import Path
from typing import List, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from src.core.logger import logger

BASE_DIR = Path(__file__).parent.parent.parent
ENV_FILE = BASE_DIR / ".env"

load_dotenv(ENV_FILE, override=True)
logger.info(f"Loaded environment from: {ENV_FILE}")


def mask_sensitive_data(data: dict) -> dict:
    masked = {}
    sensitive_keys = ["key", "token", "secret", "password"]

    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        elif any(s in key.lower() for s in sensitive_keys) and (value is None or isinstance(value, str)):
            if not value:
                masked[key] = "<not set>"
            elif len(value) <= 4:
                masked[key] = "***"
            else:
                masked[key] = f"{value[:4]}...{value[-4:]}"
        else:
            masked[key] = value

    return masked


class CoreSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        protected_namespaces=(),
    )


class ApiSettings(CoreSettings):
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000, gt=0)
    API_WORKERS: int = Field(default=1, ge=1)
    API_CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])
    AUDIO_DIR: str = Field(
        default="uploads",
        description="Directory where synthesized reply audio is stored",
    )
    MAX_AUDIO_BYTES: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Upload limit for /api/transcribe",
    )
    SESSION_TIMEOUT_S: int = Field(
        default=3600,
        gt=0,
        description="Idle seconds before a session and its transcript are dropped",
    )
    SESSION_CLEANUP_INTERVAL_S: float = Field(default=300.0, gt=0.0)


class VoiceSettings(CoreSettings):
    TRANSCRIPTION_PROVIDER: str = Field(
        default="openai",
        description="Speech-to-text provider: 'openai'",
    )
    SPEECH_PROVIDER: str = Field(
        default="elevenlabs",
        description="Text-to-speech provider: 'elevenlabs'",
    )

    # OpenAI Whisper
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_BASE_URL: str = Field(default="https://api.openai.com/v1")
    WHISPER_MODEL: str = Field(default="whisper-1")
    WHISPER_LANGUAGE: Optional[str] = Field(
        default=None,
        description="ISO-639-1 hint for Whisper, None lets the model detect it",
    )
    TRANSCRIBE_TIMEOUT_S: float = Field(default=60.0, gt=0.0)

    # ElevenLabs
    ELEVENLABS_API_KEY: Optional[str] = Field(default=None)
    ELEVENLABS_BASE_URL: str = Field(default="https://api.elevenlabs.io/v1")
    ELEVENLABS_VOICE_ID: str = Field(
        default="pNInz6obpgDQGcFmaJgB",
        description="Adam, a built-in voice available to all accounts",
    )
    ELEVENLABS_MODEL_ID: str = Field(default="eleven_monolingual_v1")
    ELEVENLABS_STABILITY: float = Field(default=0.5, ge=0.0, le=1.0)
    ELEVENLABS_SIMILARITY_BOOST: float = Field(default=0.5, ge=0.0, le=1.0)
    TTS_TIMEOUT_S: float = Field(default=60.0, gt=0.0)
    TTS_ENABLED: bool = Field(
        default=True,
        description="Synthesize reply audio; text-only replies when disabled",
    )


class WorkflowSettings(CoreSettings):
    N8N_WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="n8n webhook that answers user commands",
    )
    WEBHOOK_TIMEOUT_S: float = Field(default=60.0, gt=0.0)
    FALLBACK_REPLY: str = Field(
        default="I'm sorry, sir. I received no answer to that. Please try again.",
        min_length=1,
    )


class ConversationSettings(CoreSettings):
    SETTLE_DELAY_S: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause before re-opening the microphone in conversation mode",
    )
    INTERRUPTIONS_ENABLED: bool = Field(default=True)
    INTERRUPT_MIN_CONFIDENCE: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Recognizer confidence required to cut off assistant playback",
    )
    INTERRUPT_MIN_LENGTH: int = Field(
        default=3,
        ge=1,
        description="Minimum characters of recognized speech to count as an interruption",
    )
    INTERRUPT_FILLER_PATTERNS: List[str] = Field(
        default_factory=lambda: [
            "u+h+",
            "u+m+",
            "h+m+",
            "e+r+m*",
            "a+h+",
            "o+h+",
            "m+h+m+",
        ],
        description="Regex patterns for filler words that never interrupt",
    )
    RECOGNIZER_RESTART_DELAY_S: float = Field(default=0.2, ge=0.0)
    CLIENT_DEVICE_TIMEOUT_S: float = Field(
        default=5.0,
        gt=0.0,
        description="How long to wait for the browser to confirm microphone actions",
    )


class LangfuseSettings(CoreSettings):
    LANGFUSE_ENABLED: bool = Field(
        default=False,
        description="Export one OpenTelemetry trace per conversation turn to Langfuse",
    )
    LANGFUSE_HOST: Optional[str] = Field(default=None)
    LANGFUSE_BASE_URL: Optional[str] = Field(
        default=None,
        description="Alias for LANGFUSE_HOST",
    )
    LANGFUSE_PUBLIC_KEY: Optional[str] = Field(default=None)
    LANGFUSE_SECRET_KEY: Optional[str] = Field(default=None)
    LANGFUSE_ENVIRONMENT: str = Field(default="default")


class Settings(CoreSettings):
    api: ApiSettings = Field(default_factory=ApiSettings)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    langfuse: LangfuseSettings = Field(default_factory=LangfuseSettings)


try:
    settings = Settings()

    settings_dict = settings.model_dump()
    masked_settings = mask_sensitive_data(settings_dict)
    logger.info(f"Settings loaded: {json.dumps(masked_settings, indent=2)}")

except ValidationError as e:
    logger.exception(f"Error validating settings: {e.json()}")
    raise
