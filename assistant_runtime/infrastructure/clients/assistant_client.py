from typing import Dict, Any, List, Optional, AsyncIterator

import structlog

from .base import CollaboratorClient, CollaboratorError

logger = structlog.get_logger(__name__)

STREAM_PATH = "/api/assistant/stream"


class AssistantStreamClient(CollaboratorClient):
    """Transport that POSTs a conversation to the stream endpoint and yields the raw body"""

    service_name = "assistant stream"

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        session_id: Optional[str] = None,
    ) -> AsyncIterator[bytes]:
        payload: Dict[str, Any] = {"messages": messages}
        if session_id:
            payload["sessionId"] = session_id
        logger.debug("Opening assistant stream", messages=len(messages), session_id=session_id)

        async with self._client() as client:
            async with client.stream(
                "POST",
                STREAM_PATH,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace").strip()
                    raise CollaboratorError(
                        self.service_name, response.status_code, body or f"HTTP {response.status_code}"
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
