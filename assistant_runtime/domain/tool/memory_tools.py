from typing import List

import structlog
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool, tool

from assistant_runtime.domain.context.memory.memory_store import MemoryStore

logger = structlog.get_logger(__name__)


def _session_id(config: RunnableConfig) -> str:
    configurable = (config or {}).get("configurable") or {}
    session_id = configurable.get("thread_id")
    if not session_id:
        raise ValueError("Memory tools need a thread_id in the run config")
    return str(session_id)


def build_memory_tools(store: MemoryStore) -> List[BaseTool]:
    """Session-scoped memory tools bound to ``store``"""

    @tool
    def store_memory(content: str, config: RunnableConfig, type: str = "general") -> str:
        """Store an important fact from the conversation so it can be recalled later
        in this session. Use for user preferences, decisions and key details."""
        session_id = _session_id(config)
        logger.debug("Storing session memory", session_id=session_id, type=type)
        return store.store_memory(session_id, content, type=type)

    @tool
    def search_memory(query: str, config: RunnableConfig, limit: int = 5) -> str:
        """Search facts stored earlier in this session."""
        memories = store.search_memories(_session_id(config), query, limit=limit)
        if not memories:
            return f"No memories found for: {query}"
        return "\n".join(f"- [{memory.type}] {memory.content}" for memory in memories)

    return [store_memory, search_memory]
