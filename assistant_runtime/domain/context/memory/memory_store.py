from typing import Dict, List, Any, Optional, Callable
from datetime import datetime

from assistant_runtime.domain.models.conversation import Memory, utcnow

MAX_MEMORIES_PER_SESSION = 100


class MemoryStore:
    """Bounded per-session scratch memories, oldest evicted first"""

    def __init__(
        self,
        max_per_session: int = MAX_MEMORIES_PER_SESSION,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.memories: Dict[str, List[Memory]] = {}
        self.max_per_session = max_per_session
        self._clock = clock

    def store_memory(
        self,
        session_id: str,
        content: str,
        type: str = "general",
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """Store a memory and return a short confirmation"""

        memories = self.memories.setdefault(session_id, [])
        memories.append(Memory(
            content=content,
            type=type,
            timestamp=self._clock(),
            session_id=session_id,
            metadata=metadata,
        ))

        if len(memories) > self.max_per_session:
            memories.sort(key=lambda m: m.timestamp)
            del memories[:len(memories) - self.max_per_session]

        preview = content[:100] + ("..." if len(content) > 100 else "")
        return f"Memory stored: {preview}"

    def search_memories(self, session_id: str, query: str, limit: int = 10) -> List[Memory]:
        """Case-insensitive substring search over content and type, most recent first"""

        query_lower = query.lower()
        matches = [
            memory for memory in self._newest_first(session_id)
            if query_lower in memory.content.lower() or query_lower in memory.type.lower()
        ]
        return matches[:limit]

    def get_recent_memories(self, session_id: str, limit: int = 10) -> List[Memory]:
        return self._newest_first(session_id)[:limit]

    def clear_session(self, session_id: str):
        self.memories.pop(session_id, None)

    def _newest_first(self, session_id: str) -> List[Memory]:
        # Reversed before a stable sort so equal timestamps keep newest-first order
        memories = list(reversed(self.memories.get(session_id, [])))
        return sorted(memories, key=lambda m: m.timestamp, reverse=True)
