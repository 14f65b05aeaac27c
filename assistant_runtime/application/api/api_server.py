from typing import Any, Optional
from contextlib import asynccontextmanager
from datetime import timedelta
import asyncio

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from assistant_runtime.application.api.dependencies import (
    ServiceNotConfiguredError, error_response
)
from assistant_runtime.application.api.route import assistant, gmail, memory, sessions, taskstudio
from assistant_runtime.domain.context.context_manager import ContextManager
from assistant_runtime.domain.context.memory.memory_store import MemoryStore
from assistant_runtime.domain.context.state.session_registry import SessionRegistry
from assistant_runtime.domain.orchestration.core.agent_graph import build_agent_graph, create_chat_model
from assistant_runtime.domain.orchestration.core.main_agent import AssistantOrchestrator
from assistant_runtime.domain.tool.memory_tools import build_memory_tools
from assistant_runtime.domain.tool.tool_registry import CLIENT_TOOL_IDS, ToolRegistry
from assistant_runtime.infrastructure.clients.assistant_client import AssistantStreamClient
from assistant_runtime.infrastructure.clients.base import CollaboratorClient, CollaboratorError
from assistant_runtime.infrastructure.clients.mail_service import MailServiceClient
from assistant_runtime.infrastructure.clients.memory_service import MemoryServiceClient, MissingUserInfoError
from assistant_runtime.infrastructure.clients.task_service import TaskServiceClient
from assistant_runtime.infrastructure.config.settings import Settings, load_settings
from assistant_runtime.infrastructure.observability.logging import metrics, setup_logging

logger = structlog.get_logger(__name__)


def _client(cls, url: Optional[str], settings: Settings) -> Optional[CollaboratorClient]:
    if not url:
        return None
    return cls(url, timeout=settings.services.timeout_seconds)


def create_app(
    settings: Optional[Settings] = None,
    graph: Optional[Any] = None,
    memory_client: Optional[MemoryServiceClient] = None,
    mail_client: Optional[MailServiceClient] = None,
    task_client: Optional[TaskServiceClient] = None,
    assistant_client: Optional[AssistantStreamClient] = None,
) -> FastAPI:
    """Build the application; collaborators and the agent graph can be injected"""

    settings = settings or load_settings()
    setup_logging(
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        service_name=settings.logging.service_name,
    )

    sessions_registry = SessionRegistry(
        timeout=timedelta(hours=settings.session.timeout_hours),
        max_messages=settings.session.max_messages,
    )
    memory_store = MemoryStore(max_per_session=settings.memory.max_per_session)
    registry = ToolRegistry()
    tools = build_memory_tools(memory_store)
    for tool in tools:
        registry.register_langchain_tool(tool, category="memory")

    if graph is None:
        model = create_chat_model(
            settings.model.name, settings.model.provider, settings.model.temperature
        )
        graph = build_agent_graph(
            model,
            tools,
            client_tools=[registry.function_schema(tool_id) for tool_id in CLIENT_TOOL_IDS],
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        interval = timedelta(minutes=settings.session.cleanup_interval_minutes)
        cleanup = asyncio.create_task(sessions_registry.run_cleanup_loop(interval))
        logger.info("Assistant runtime started", model=settings.model.name)
        try:
            yield
        finally:
            cleanup.cancel()
            logger.info("Assistant runtime stopped", active_sessions=len(sessions_registry.sessions))

    app = FastAPI(title="Assistant Runtime", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.sessions = sessions_registry
    app.state.memory_store = memory_store
    app.state.registry = registry
    app.state.orchestrator = AssistantOrchestrator(
        graph,
        sessions_registry,
        memory_store,
        registry=registry,
        context_manager=ContextManager(memory_store, injection_limit=settings.memory.injection_limit),
        recursion_limit=settings.model.recursion_limit,
    )
    app.state.memory_client = memory_client or _client(MemoryServiceClient, settings.services.memory_url, settings)
    app.state.mail_client = mail_client or _client(MailServiceClient, settings.services.mail_url, settings)
    app.state.task_client = task_client or _client(TaskServiceClient, settings.services.tasks_url, settings)
    app.state.assistant_client = assistant_client or _client(
        AssistantStreamClient, settings.services.assistant_url, settings
    )

    @app.exception_handler(CollaboratorError)
    async def collaborator_error(request: Request, exc: CollaboratorError):
        logger.error("Collaborator failure", path=request.url.path, error=str(exc))
        return error_response(500, exc.detail or str(exc))

    @app.exception_handler(MissingUserInfoError)
    async def missing_user_info(request: Request, exc: MissingUserInfoError):
        return error_response(400, str(exc))

    @app.exception_handler(ServiceNotConfiguredError)
    async def service_not_configured(request: Request, exc: ServiceNotConfiguredError):
        return error_response(503, str(exc))

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "active_sessions": len(sessions_registry.active_session_ids()),
            "model": settings.model.name,
            "metrics": metrics.get_metrics_summary(),
        }

    for route_module in (assistant, sessions, memory, gmail, taskstudio):
        app.include_router(route_module.router)

    return app


def main():
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
