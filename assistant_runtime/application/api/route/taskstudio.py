import structlog
from fastapi import APIRouter, Request

from assistant_runtime.application.api.dependencies import (
    error_response, get_assistant_client, get_task_client
)
from assistant_runtime.application.runtime.runtime_adapter import LocalRuntimeAdapter
from assistant_runtime.application.runtime.task_runner import TaskRunner
from assistant_runtime.infrastructure.clients.base import CollaboratorError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/taskstudio", tags=["taskstudio"])


@router.post("/process-due")
async def process_due(request: Request):
    """Run every scheduled task that is due through the assistant"""

    runner = TaskRunner(
        get_task_client(request),
        LocalRuntimeAdapter(get_assistant_client(request)),
    )
    try:
        processed = await runner.process_due()
    except CollaboratorError as e:
        logger.error("Failed to fetch scheduled tasks", error=str(e))
        return error_response(502, f"Failed to fetch scheduled tasks: {e.detail}")

    return {"success": True, "count": len(processed), "processed": processed}
