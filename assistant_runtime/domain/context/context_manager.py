from typing import Dict, List, Any
import json
import re

import structlog
from langchain_core.messages import (
    AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage, trim_messages
)

from assistant_runtime.domain.context.memory.memory_store import MemoryStore
from assistant_runtime.domain.models.conversation import Session, Memory

logger = structlog.get_logger(__name__)


def _parts(content: Any) -> List[Dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append({"type": "text", "text": part})
        elif isinstance(part, dict):
            parts.append(part)
        elif hasattr(part, "model_dump"):
            parts.append(part.model_dump(by_alias=True))
    return parts


def _text(parts: List[Dict[str, Any]]) -> str:
    return "".join(part.get("text", "") for part in parts if part.get("type") == "text")


def _args(part: Dict[str, Any]) -> Dict[str, Any]:
    args = part.get("args")
    if isinstance(args, dict):
        return args
    try:
        parsed = json.loads(part.get("argsText") or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_langchain_messages(message: Dict[str, Any]) -> List[BaseMessage]:
    """Convert one wire message into LangChain messages.

    An assistant message with resolved tool calls expands into the AI message
    followed by one ToolMessage per result.
    """

    role = message.get("role")
    parts = _parts(message.get("content"))
    text = _text(parts)

    if role == "user":
        return [HumanMessage(content=text)]
    if role == "system":
        return [SystemMessage(content=text)]
    if role == "tool":
        if not message.get("toolCallId"):
            logger.debug("Skipping tool message without toolCallId")
            return []
        return [ToolMessage(content=text, tool_call_id=message["toolCallId"])]
    if role != "assistant":
        logger.debug("Skipping message with unsupported role", role=role)
        return []

    calls = [part for part in parts if part.get("type") == "tool-call"]
    converted: List[BaseMessage] = [AIMessage(
        content=text,
        id=message.get("id") or None,
        tool_calls=[
            {"id": call.get("toolCallId"), "name": call.get("toolName"), "args": _args(call)}
            for call in calls
        ],
    )]
    for call in calls:
        if call.get("result") is None:
            continue
        result = call["result"]
        converted.append(ToolMessage(
            content=result if isinstance(result, str) else json.dumps(result),
            tool_call_id=call.get("toolCallId"),
            status="error" if call.get("isError") else "success",
        ))
    return converted


def latest_user_text(messages: List[Dict[str, Any]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return _text(_parts(message.get("content")))
    return ""


class ContextManager:
    """Assembles the model input for one turn of a session"""

    def __init__(self, memory_store: MemoryStore, injection_limit: int = 5):
        self.memory_store = memory_store
        self.injection_limit = injection_limit

    def history(self, session: Session, incoming: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Conversation so far: a single new turn continues the stored history,
        a longer list is the client's full thread and replaces it"""
        if len(incoming) == 1:
            return list(session.messages) + list(incoming)
        return list(incoming)

    def build_messages(self, session: Session, incoming: List[Dict[str, Any]]) -> List[BaseMessage]:
        metadata = session.metadata
        conversation: List[BaseMessage] = []
        for message in self.history(session, incoming):
            conversation.extend(to_langchain_messages(message))

        if metadata.get("message_trimming") and conversation:
            conversation = trim_messages(
                conversation,
                max_tokens=int(metadata.get("max_past_messages_for_subagents") or 10),
                token_counter=len,
                strategy="last",
                start_on="human",
                include_system=False,
                allow_partial=False,
            )

        system: List[BaseMessage] = []
        if metadata.get("system_prompt"):
            system.append(SystemMessage(content=metadata["system_prompt"]))

        if metadata.get("memory_injection_enabled"):
            memories = self.relevant_memories(session.session_id, latest_user_text(incoming))
            if memories:
                system.append(SystemMessage(content=self.format_memories(memories)))

        logger.debug(
            "Built model input",
            session_id=session.session_id,
            messages=len(conversation),
            system_messages=len(system),
        )
        return system + conversation

    def relevant_memories(self, session_id: str, query: str) -> List[Memory]:
        """Memories matching the query, or the most recent ones when nothing matches"""
        memories: List[Memory] = []
        for word in dict.fromkeys(w for w in re.findall(r"\w+", query.lower()) if len(w) > 3):
            for memory in self.memory_store.search_memories(session_id, word, limit=self.injection_limit):
                if memory not in memories:
                    memories.append(memory)
        if not memories:
            memories = self.memory_store.get_recent_memories(session_id, limit=self.injection_limit)
        return memories[:self.injection_limit]

    @staticmethod
    def format_memories(memories: List[Memory]) -> str:
        lines = "\n".join(f"- [{memory.type}] {memory.content}" for memory in memories)
        return f"Relevant memories from this session:\n{lines}"
