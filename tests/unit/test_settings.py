import logging

from src.core.logger import session_logger
from src.core.settings import ConversationSettings, VoiceSettings, mask_sensitive_data


def test_mask_sensitive_data():
    masked = mask_sensitive_data({
        "voice": {
            "OPENAI_API_KEY": "sk-1234567890",
            "ELEVENLABS_API_KEY": None,
            "WHISPER_MODEL": "whisper-1",
        },
        "token": "abc",
    })

    assert masked["voice"]["OPENAI_API_KEY"] == "sk-1...7890"
    assert masked["voice"]["ELEVENLABS_API_KEY"] == "<not set>"
    assert masked["voice"]["WHISPER_MODEL"] == "whisper-1"
    assert masked["token"] == "***"


def test_voice_defaults_match_hosted_services():
    voice = VoiceSettings(OPENAI_API_KEY=None, ELEVENLABS_API_KEY=None)

    assert voice.ELEVENLABS_VOICE_ID == "pNInz6obpgDQGcFmaJgB"
    assert voice.ELEVENLABS_MODEL_ID == "eleven_monolingual_v1"
    assert voice.WHISPER_MODEL == "whisper-1"


def test_conversation_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SETTLE_DELAY_S", "0.25")
    monkeypatch.setenv("INTERRUPT_FILLER_PATTERNS", '["u+m+"]')

    conversation = ConversationSettings()

    assert conversation.SETTLE_DELAY_S == 0.25
    assert conversation.INTERRUPT_FILLER_PATTERNS == ["u+m+"]


def test_session_logger_prefixes_session_id(caplog):
    log = session_logger("session_42")

    with caplog.at_level(logging.INFO, logger="jarvis.session"):
        log.info("user said: hello")

    assert caplog.records[-1].name == "jarvis.session"
    assert caplog.records[-1].getMessage() == "Session session_42: user said: hello"
