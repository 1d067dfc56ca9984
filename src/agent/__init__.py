"""Conversation orchestration for the JARVIS voice assistant."""

from src.agent.graph import create_response_graph
from src.agent.orchestrator import ConversationOrchestrator, ErrorKind
from src.agent.state import ConversationState, Mode

__all__ = [
    "create_response_graph",
    "ConversationOrchestrator",
    "ConversationState",
    "ErrorKind",
    "Mode",
]
