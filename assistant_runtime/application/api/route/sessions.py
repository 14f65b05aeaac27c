from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from assistant_runtime.application.api.dependencies import error_response, get_sessions
from assistant_runtime.domain.context.state.session_registry import SessionRegistry
from assistant_runtime.domain.models.conversation import Session, WireModel
from assistant_runtime.domain.orchestration.core.main_agent import generate_thread_id

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class CreateSessionRequest(WireModel):
    session_id: Optional[str] = None
    channel_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _session_body(session: Session) -> Dict[str, Any]:
    return {
        "session": session.get_summary(),
        "metadata": session.metadata,
        "messages": session.messages,
    }


@router.post("", status_code=201)
async def create_session(
    request: CreateSessionRequest,
    sessions: SessionRegistry = Depends(get_sessions),
):
    session_id = request.session_id or generate_thread_id(request.channel_id)
    session = sessions.create_session(session_id, request.metadata)
    return _session_body(session)


@router.get("/{session_id}")
async def get_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get_session(session_id)
    if session is None:
        return error_response(404, f"Session {session_id} not found")
    return _session_body(session)


@router.delete("/{session_id}")
async def delete_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    if not sessions.delete_session(session_id):
        return error_response(404, f"Session {session_id} not found")
    return {"success": True}
