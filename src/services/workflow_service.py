import json
from typing import Optional

import httpx

from src.core.logger import logger
from src.core.exceptions import (
    ConfigurationError,
    EmptyUpstreamResponse,
    UpstreamTimeout,
    UpstreamUnreachable,
)

REPLY_KEYS = ("response", "output", "text", "message")


def extract_reply_text(body: str) -> str:
    """Read a webhook reply.

    n8n answers with whatever the workflow's last node produced: usually plain
    text, sometimes a JSON object or a one-element list wrapping one.
    """
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip()

    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict):
        for key in REPLY_KEYS:
            value = payload.get(key)
            if isinstance(value, str):
                return value.strip()
        return ""
    if isinstance(payload, str):
        return payload.strip()
    # null, booleans and numbers are not something to say out loud
    return ""


class WorkflowService:
    """Forwards user commands to the n8n workflow webhook."""

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_s: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._webhook_url = webhook_url
        self._timeout_s = timeout_s
        self._client = client

    async def run(self, message: str, session_id: str) -> str:
        if not self._webhook_url:
            raise ConfigurationError("N8N_WEBHOOK_URL is not set")

        payload = {"query": message, "sessionId": session_id}
        logger.info(f"Sending command to workflow for session {session_id}")

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._webhook_url, json=payload, timeout=self._timeout_s
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                    response = await client.post(self._webhook_url, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Workflow webhook timed out: {e}")
            raise UpstreamTimeout(f"Workflow webhook timed out after {self._timeout_s}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Workflow webhook returned {e.response.status_code}")
            raise UpstreamUnreachable(
                f"Webhook request failed: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Workflow webhook error: {e}")
            raise UpstreamUnreachable(f"Webhook request failed: {str(e)}") from e

        text = extract_reply_text(response.text)
        if not text:
            raise EmptyUpstreamResponse("Workflow webhook returned an empty reply")

        logger.info(f"Workflow replied: {text[:100]}")
        return text
