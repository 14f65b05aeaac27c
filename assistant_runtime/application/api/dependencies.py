from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from assistant_runtime.domain.context.memory.memory_store import MemoryStore
from assistant_runtime.domain.context.state.session_registry import SessionRegistry
from assistant_runtime.domain.orchestration.core.main_agent import AssistantOrchestrator
from assistant_runtime.domain.tool.tool_registry import ToolRegistry
from assistant_runtime.infrastructure.clients.base import CollaboratorClient


class ServiceNotConfiguredError(Exception):
    """A route needs a collaborator whose base URL is not configured"""

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"{service} is not configured")


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def bearer_token(request: Request) -> Optional[str]:
    """Caller's bearer token, forwarded unchanged to collaborators"""
    header = request.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        return header[len("bearer "):].strip() or None
    return None


def _collaborator(request: Request, name: str, service: str) -> CollaboratorClient:
    client = getattr(request.app.state, name, None)
    if client is None:
        raise ServiceNotConfiguredError(service)
    return client.with_token(bearer_token(request))


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_memory_store(request: Request) -> MemoryStore:
    return request.app.state.memory_store


def get_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


def get_orchestrator(request: Request) -> AssistantOrchestrator:
    return request.app.state.orchestrator


def get_memory_client(request: Request):
    return _collaborator(request, "memory_client", "memory service")


def get_mail_client(request: Request):
    return _collaborator(request, "mail_client", "mail service")


def get_task_client(request: Request):
    return _collaborator(request, "task_client", "task service")


def get_assistant_client(request: Request):
    return _collaborator(request, "assistant_client", "assistant stream")
