from langgraph.graph.state import CompiledStateGraph

from src.agent.collaborators import Reply, ResponderService
from src.core.logger import logger
from src.core.exceptions import JarvisError, UpstreamUnreachable


class ConversationService(ResponderService):
    """Runs the response graph for one user command."""

    def __init__(self, response_graph: CompiledStateGraph):
        self._graph = response_graph

    async def respond(self, text: str, session_id: str) -> Reply:
        try:
            result = await self._graph.ainvoke({"message": text, "session_id": session_id})
        except JarvisError:
            raise
        except Exception as e:
            logger.error(f"Response graph error: {e}")
            raise UpstreamUnreachable(f"Failed to process command: {str(e)}") from e

        return Reply(text=result.get("reply_text", ""), audio_url=result.get("audio_url"))
