from typing import Dict, Any, List, Optional, Callable
import asyncio
from datetime import datetime, timedelta

import structlog

from assistant_runtime.domain.models.conversation import Session, utcnow
from assistant_runtime.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

SESSION_TIMEOUT = timedelta(hours=24)
CLEANUP_INTERVAL = timedelta(hours=1)
MAX_SESSION_MESSAGES = 50

DEFAULT_SYSTEM_PROMPT = (
    "You are Athena, a helpful AI assistant. "
    "You are highly capable and focused on providing clear, accurate, and helpful responses. "
    "Break down complex problems into manageable steps, provide practical solutions, "
    "maintain a professional yet friendly tone, and always prioritize accuracy over speculation. "
    "You have access to file search to find files in the user's cloud storage."
)


def default_session_metadata() -> Dict[str, Any]:
    return {
        "model": "claude-sonnet-4-20250514",
        "system_prompt": DEFAULT_SYSTEM_PROMPT,
        "temperature": 0.2,
        "enabled_tools": [
            "web_search",
            "tiptap_ai",
            "store_memory",
            "search_memory",
            "search_files",
        ],
        "web_search_enabled": True,
        "tool_use_enabled": True,
        "backend_parallel_functioncalling": False,
        "frontend_parallel_functioncalling": False,
        "memory_collector_enabled": True,
        "memory_injection_enabled": True,
        "max_past_messages_for_subagents": 10,
        "message_trimming": True,
    }


class SessionRegistry:
    """In-process conversation state keyed by session id.

    Sessions expire after ``timeout`` of inactivity. Expiry is checked lazily on
    every read, and ``run_cleanup_loop`` sweeps periodically.

    No method awaits, so each call is atomic on the event loop. Keep it that way.
    """

    def __init__(
        self,
        timeout: timedelta = SESSION_TIMEOUT,
        max_messages: int = MAX_SESSION_MESSAGES,
        default_metadata: Optional[Dict[str, Any]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sessions: Dict[str, Session] = {}
        self.timeout = timeout
        self.max_messages = max_messages
        self.default_metadata = default_metadata if default_metadata is not None else default_session_metadata()
        self._clock = clock

    def create_session(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> Session:
        """Create a session with default flags; replaces an existing one with the same id"""

        now = self._clock()
        session = Session(
            session_id=session_id,
            metadata={**self.default_metadata, **(metadata or {}), "created_at": now.isoformat()},
            created_at=now,
            last_activity=now,
        )
        self.sessions[session_id] = session

        agent_logger.log_session_event(session_id, "created")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        """Return the session unless missing or expired; expired sessions are evicted"""

        session = self.sessions.get(session_id)
        if session is None:
            return None

        if self._is_expired(session, self._clock()):
            del self.sessions[session_id]
            agent_logger.log_session_event(session_id, "expired")
            return None

        return session

    def get_or_create_session(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> Session:
        return self.get_session(session_id) or self.create_session(session_id, metadata)

    def update_session(
        self,
        session_id: str,
        messages: List[Any],
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[Session]:
        """Replace the message history and merge metadata"""

        session = self.get_session(session_id)
        if session is None:
            return None

        session.messages = list(messages)[-self.max_messages:]
        if metadata:
            session.metadata = {**session.metadata, **metadata}
        session.touch(self._clock())
        return session

    def add_message(self, session_id: str, message: Any) -> Optional[Session]:
        """Append a message, keeping only the most recent ``max_messages``"""

        session = self.get_session(session_id)
        if session is None:
            return None

        session.messages.append(message)
        if len(session.messages) > self.max_messages:
            session.messages = session.messages[-self.max_messages:]
        session.touch(self._clock())
        return session

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None

    def cleanup(self) -> int:
        """Evict every expired session and return how many were removed"""

        now = self._clock()
        expired = [
            session_id for session_id, session in self.sessions.items()
            if self._is_expired(session, now)
        ]
        for session_id in expired:
            del self.sessions[session_id]

        if expired:
            logger.info("Evicted expired sessions", count=len(expired))
        return len(expired)

    def active_session_ids(self) -> List[str]:
        now = self._clock()
        return [
            session_id for session_id, session in self.sessions.items()
            if not self._is_expired(session, now)
        ]

    async def run_cleanup_loop(self, interval: timedelta = CLEANUP_INTERVAL):
        """Periodic sweep to reclaim memory held by idle sessions"""
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                self.cleanup()
            except Exception as e:
                logger.error("Session cleanup error", error=str(e))

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return now - session.last_activity >= self.timeout
