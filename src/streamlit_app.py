"""Streamlit console for JARVIS: transcript, replies and typed or recorded commands."""

import uuid
from typing import List, Optional

import requests
import streamlit as st

from src.core.logger import logger

# Page configuration
st.set_page_config(
    page_title="JARVIS",
    page_icon="🎙️",
    layout="wide",
)

# Initialize session state
if "session_id" not in st.session_state:
    st.session_state.session_id = f"session_{uuid.uuid4().hex}"
if "api_connected" not in st.session_state:
    st.session_state.api_connected = False
if "status" not in st.session_state:
    st.session_state.status = "Ready for your command, sir."
if "last_audio_url" not in st.session_state:
    st.session_state.last_audio_url = None


def fetch_turns(api_url: str, session_id: str) -> List[dict]:
    """Load the session transcript, oldest first."""
    try:
        response = requests.get(f"{api_url}/api/conversations/{session_id}", timeout=5)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Error loading conversation: {e}")
        return []
    return response.json()


def send_command(api_url: str, session_id: str, message: str) -> Optional[dict]:
    try:
        response = requests.post(
            f"{api_url}/api/jarvis",
            json={"message": message, "sessionId": session_id},
            timeout=90,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Error sending command: {e}")
        st.error("JARVIS Error: Failed to process your request. Please try again.")
        return None
    return response.json()


def transcribe(api_url: str, audio_bytes: bytes, content_type: str) -> Optional[str]:
    try:
        response = requests.post(
            f"{api_url}/api/transcribe",
            data=audio_bytes,
            headers={"Content-Type": content_type},
            timeout=60,
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Error transcribing audio: {e}")
        st.error("Transcription failed. Please try again.")
        return None
    return response.json().get("text", "").strip() or None


def run_command(api_url: str, message: str) -> None:
    st.session_state.status = "JARVIS is processing your request..."
    with st.spinner("JARVIS is processing your request..."):
        reply = send_command(api_url, st.session_state.session_id, message)
    if reply is None:
        st.session_state.status = "Error occurred. Ready for your command, sir."
        return
    st.session_state.last_audio_url = reply.get("audioUrl")
    st.session_state.status = "Ready for your command, sir."


# Title and description
st.title("🎙️ JARVIS")
st.markdown("Voice commands answered by your n8n workflow, spoken back with ElevenLabs.")

# Sidebar configuration
with st.sidebar:
    st.header("⚙️ Settings")

    api_url = st.text_input(
        "API URL",
        value="http://localhost:8000",
        help="URL of the FastAPI server",
    ).rstrip("/")

    status_color = "🟢" if st.session_state.api_connected else "🔴"
    st.markdown(f"**Status:** {status_color} {'Connected' if st.session_state.api_connected else 'Disconnected'}")
    st.markdown(f"**Session:** `{st.session_state.session_id}`")

    if st.button("🔍 Test Connection"):
        try:
            response = requests.get(f"{api_url}/health", timeout=2)
            if response.status_code == 200:
                st.success("✅ Server is running!")
                st.session_state.api_connected = True
            else:
                st.error("❌ Server not responding correctly")
                st.session_state.api_connected = False
        except requests.RequestException as e:
            st.error(f"❌ Cannot connect to server: {e}")
            st.session_state.api_connected = False

    st.divider()

    if st.button("🆕 New Session"):
        st.session_state.session_id = f"session_{uuid.uuid4().hex}"
        st.session_state.last_audio_url = None
        st.rerun()

turns = fetch_turns(api_url, st.session_state.session_id) if st.session_state.api_connected else []

col1, col2 = st.columns([2, 1])

with col1:
    st.subheader("💬 Conversation")

    chat_container = st.container(height=500)
    with chat_container:
        for turn in turns:
            with st.chat_message(turn["role"]):
                st.write(turn["text"])

    if turns:
        transcript = "\n\n".join(f"{turn['role'].upper()}: {turn['text']}" for turn in turns)
        st.download_button(
            label="📥 Download Transcript",
            data=transcript,
            file_name="jarvis_transcript.txt",
            mime="text/plain",
        )

with col2:
    st.subheader("🎤 Commands")
    st.info(st.session_state.status)

    if not st.session_state.api_connected:
        st.warning("⚠️ Please test connection first")

    with st.form("command_form", clear_on_submit=True):
        message = st.text_input("Type a command")
        submitted = st.form_submit_button("📤 Send", disabled=not st.session_state.api_connected)
    if submitted and message.strip():
        run_command(api_url, message.strip())
        st.rerun()

    audio_data = st.audio_input("Or record one", key="audio_input")
    if audio_data is not None and st.button("🎙️ Send Recording", disabled=not st.session_state.api_connected):
        st.session_state.status = "Processing your command..."
        with st.spinner("Processing your command..."):
            text = transcribe(api_url, audio_data.getvalue(), audio_data.type or "audio/wav")
        if text is None:
            st.session_state.status = "I didn't catch that, sir."
        else:
            run_command(api_url, text)
        st.rerun()

    if st.session_state.last_audio_url:
        st.markdown("**Latest reply:**")
        st.audio(f"{api_url}{st.session_state.last_audio_url}", format="audio/mpeg", autoplay=True)

    with st.expander("ℹ️ System Info"):
        st.markdown(f"""
        **API:** `{api_url}`
        **Voice stream:** `{api_url.replace('http', 'ws', 1)}/ws/voice?sessionId={st.session_state.session_id}`
        **Turns:** {len(turns)}
        """)
