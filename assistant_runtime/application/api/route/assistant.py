from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from assistant_runtime.application.api.dependencies import (
    error_response, get_orchestrator, get_registry
)
from assistant_runtime.application.stream.schema.events import encode_frame
from assistant_runtime.domain.models.conversation import Message, WireModel
from assistant_runtime.domain.orchestration.core.main_agent import AssistantOrchestrator
from assistant_runtime.domain.tool.tool_registry import ToolRegistry

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["assistant"])


class StreamRequest(WireModel):
    messages: List[Message]
    session_id: Optional[str] = None


@router.post("/api/assistant/stream")
async def stream_assistant(
    request: StreamRequest,
    orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
):
    """Stream one assistant response as ``data: <json>`` frames"""

    if not request.messages:
        logger.warning("Rejected stream request without messages", session_id=request.session_id)
        return error_response(400, "messages must not be empty")

    messages = [message.to_wire() for message in request.messages]

    async def frames():
        async for event in orchestrator.stream_response(request.session_id, messages):
            yield encode_frame(event)

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/api/tools")
async def list_tools(registry: ToolRegistry = Depends(get_registry)):
    return {"tools": registry.get_available_tools()}
