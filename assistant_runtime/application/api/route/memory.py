"""Knowledge-graph memory proxy.

``GET /api/memory?action=health|status`` reports on the memory service.
``POST /api/memory`` dispatches on ``operation``: ``search``, ``store`` or
``context``. Every operation needs ``userId``, ``workspaceId`` and ``email``.
"""

from typing import Dict, Any, Optional

import structlog
from fastapi import APIRouter, Body, Request

from assistant_runtime.application.api.dependencies import error_response, get_memory_client
from assistant_runtime.infrastructure.clients.memory_service import UserInfo

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/memory", tags=["memory"])

OPERATIONS = ("search", "store", "context")


def _int_field(body: Dict[str, Any], key: str, default: int) -> Optional[int]:
    value = body.get(key, default)
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@router.get("")
async def memory_status(request: Request, action: Optional[str] = None):
    if action not in ("health", "status"):
        return {
            "status": "ok",
            "message": "Memory API is running",
            "endpoints": [
                "GET /api/memory?action=health",
                "GET /api/memory?action=status",
                "POST /api/memory {operation: search|store|context}",
            ],
        }

    client = get_memory_client(request)
    if action == "health":
        return await client.check_health()
    return await client.get_status()


@router.post("")
async def memory_operation(request: Request, body: Dict[str, Any] = Body(...)):
    operation = body.get("operation")
    if operation not in OPERATIONS:
        return error_response(400, "Invalid operation. Supported operations: search, store, context")

    user = UserInfo.from_payload(body)
    client = get_memory_client(request)
    logger.info("Memory operation", operation=operation, user_id=user.user_id)

    if operation == "search":
        if not body.get("query"):
            return error_response(400, "Query is required")
        max_results = _int_field(body, "maxResults", 10)
        if max_results is None:
            return error_response(400, "maxResults must be an integer")
        results = await client.search(
            body["query"],
            user,
            scope=body.get("scope", "nodes"),
            reranker=body.get("reranker", "cross_encoder"),
            max_results=max_results,
        )
    elif operation == "store":
        if not body.get("content"):
            return error_response(400, "Content is required")
        results = await client.store(
            body["content"],
            user,
            data_type=body.get("dataType", "text"),
            overflow_strategy=body.get("overflowStrategy", "split"),
        )
    else:
        if not body.get("sessionId"):
            return error_response(400, "sessionId is required")
        limit = _int_field(body, "limit", 10)
        if limit is None:
            return error_response(400, "limit must be an integer")
        results = await client.context(
            body["sessionId"],
            user,
            limit=limit,
            messages=body.get("messages"),
        )

    return {"success": True, "operation": operation, "results": results}
