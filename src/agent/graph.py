"""LangGraph response pipeline: workflow webhook, then speech synthesis."""

from typing import Literal, Optional, TypedDict

from langgraph.graph import StateGraph, END
from langgraph.graph.state import CompiledStateGraph

from src.core.exceptions import EmptyUpstreamResponse, TTSError
from src.core.logger import logger
from src.services.tts_service import TTSService
from src.services.workflow_service import WorkflowService


class ResponseState(TypedDict, total=False):
    message: str
    session_id: str
    reply_text: str
    used_fallback: bool
    audio_url: Optional[str]


def create_response_graph(
    workflow_service: WorkflowService,
    tts_service: Optional[TTSService],
    fallback_reply: str,
    speak_replies: bool = True,
) -> CompiledStateGraph:
    """Create and compile the response graph.

    Args:
        workflow_service: Answers the user's command
        tts_service: Turns the answer into a playable URL, None for text only
        fallback_reply: Said instead of an empty answer
        speak_replies: Skip synthesis when False

    Returns:
        Compiled graph taking ``{message, session_id}``
    """

    async def call_workflow(state: ResponseState) -> ResponseState:
        try:
            text = await workflow_service.run(state["message"], state["session_id"])
        except EmptyUpstreamResponse as e:
            logger.warning(f"{e}; using fallback reply")
            return {"reply_text": fallback_reply, "used_fallback": True}

        if not text.strip():
            return {"reply_text": fallback_reply, "used_fallback": True}
        return {"reply_text": text, "used_fallback": False}

    async def synthesize_speech(state: ResponseState) -> ResponseState:
        try:
            audio_url = await tts_service.synthesize_to_url(state["reply_text"])
        except TTSError as e:
            # the reply still goes out, just without audio
            logger.warning(f"Speech synthesis failed: {e}")
            return {"audio_url": None}

        logger.info(f"Reply audio available at {audio_url}")
        return {"audio_url": audio_url}

    def should_speak(state: ResponseState) -> Literal["speak", "done"]:
        if speak_replies and tts_service is not None and state.get("reply_text"):
            return "speak"
        return "done"

    logger.info("Creating response graph...")

    workflow = StateGraph(ResponseState)
    workflow.add_node("call_workflow", call_workflow)
    workflow.add_node("synthesize_speech", synthesize_speech)

    workflow.set_entry_point("call_workflow")
    workflow.add_conditional_edges(
        "call_workflow",
        should_speak,
        {
            "speak": "synthesize_speech",
            "done": END,
        },
    )
    workflow.add_edge("synthesize_speech", END)

    graph = workflow.compile()
    logger.info("Response graph created successfully")
    return graph
