from typing import Dict, List, Any, Optional, AsyncIterator
import asyncio
import time
import uuid

import structlog
from langchain_core.messages import AIMessage, BaseMessage

from assistant_runtime.application.stream.schema.events import (
    StreamEvent, MessageEndEvent
)
from assistant_runtime.domain.context.context_manager import ContextManager, latest_user_text
from assistant_runtime.domain.context.memory.memory_store import MemoryStore
from assistant_runtime.domain.context.state.session_registry import SessionRegistry
from assistant_runtime.domain.models.conversation import Message, Role, RunStatus, Session
from assistant_runtime.domain.streaming.channel import EventChannel
from assistant_runtime.domain.streaming.streaming_handler import ToolCallAggregator
from assistant_runtime.domain.tool.tool_registry import ToolRegistry
from assistant_runtime.domain.tool.tool_validator import MissingToolArgumentsError
from assistant_runtime.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

THREAD_NAMESPACE = uuid.NAMESPACE_DNS


def generate_thread_id(channel_id: Optional[str] = None, timestamp: Optional[str] = None) -> str:
    """Deterministic session id for a channel and timestamp"""
    if timestamp is None:
        timestamp = str(int(time.time() * 1000))
    return str(uuid.uuid5(THREAD_NAMESPACE, f"BANBURY:{timestamp}-{channel_id or 'web'}"))


class AssistantOrchestrator:
    """Runs one assistant turn through the agent graph and streams UI events"""

    def __init__(
        self,
        graph: Any,
        sessions: SessionRegistry,
        memory_store: MemoryStore,
        registry: Optional[ToolRegistry] = None,
        context_manager: Optional[ContextManager] = None,
        recursion_limit: int = 25,
        channel_size: int = 256,
    ):
        self.graph = graph
        self.sessions = sessions
        self.memory_store = memory_store
        self.registry = registry or ToolRegistry()
        self.context_manager = context_manager or ContextManager(memory_store)
        self.recursion_limit = recursion_limit
        self.channel_size = channel_size

    async def stream_response(
        self,
        session_id: Optional[str],
        messages: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """Stream the events of one response; the last event is always ``message-end``"""

        session_id = session_id or generate_thread_id()
        session = self.sessions.get_or_create_session(session_id)
        channel: EventChannel[StreamEvent] = EventChannel(maxsize=self.channel_size)

        producer = asyncio.create_task(self._produce(session, messages, channel))
        try:
            async for event in channel:
                yield event
        finally:
            if not producer.done():
                producer.cancel()
                logger.info("Client disconnected, response cancelled", session_id=session_id)

    async def _produce(self, session: Session, incoming: List[Dict[str, Any]], channel: EventChannel):
        structlog.contextvars.bind_contextvars(session_id=session.session_id)
        agent_logger.log_stream_event(session.session_id, "start", {"messages": len(incoming)})
        started = time.perf_counter()

        aggregator = ToolCallAggregator(registry=self.registry)

        status = RunStatus.complete()
        try:
            inputs = self._prepare_inputs(session, incoming, aggregator)
            config = {
                "configurable": {"thread_id": session.session_id},
                "recursion_limit": self.recursion_limit,
            }
            async for state in self.graph.astream({"messages": inputs}, config=config, stream_mode="values"):
                await aggregator.process_chunk(state, channel.send)
            await aggregator.finalize(channel.send)
            self._record_turn(session, incoming, aggregator)
        except MissingToolArgumentsError as e:
            logger.warning("Tool call rejected", tool=e.tool_name, missing=e.missing)
            status = RunStatus.incomplete(reason="error", error=str(e))
        except Exception as e:
            logger.error("Assistant response failed", error=str(e), exc_info=True)
            status = RunStatus.incomplete(reason="error", error=str(e))

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_latency("stream_response", duration_ms, tags={"status": status.type})
        agent_logger.log_stream_event(session.session_id, "end", {
            "status": status.type,
            "reason": status.reason,
            "duration_ms": round(duration_ms, 1),
        })

        try:
            await channel.send(MessageEndEvent(status=status))
        finally:
            await channel.close()

    def _prepare_inputs(
        self,
        session: Session,
        incoming: List[Dict[str, Any]],
        aggregator: ToolCallAggregator,
    ) -> List[BaseMessage]:
        """Model input with every prior message marked as already emitted"""

        inputs = self.context_manager.build_messages(session, incoming)
        for message in inputs:
            if not message.id:
                message.id = str(uuid.uuid4())
            aggregator.processed_messages.add(message.id)
            if isinstance(message, AIMessage):
                aggregator.processed_tool_calls.update(
                    call["id"] for call in message.tool_calls if call.get("id")
                )
        return inputs

    def _record_turn(self, session: Session, incoming: List[Dict[str, Any]], aggregator: ToolCallAggregator):
        history = self.context_manager.history(session, incoming)
        content = aggregator.content_parts()
        if content:
            reply = Message(
                id=aggregator.message_id or str(uuid.uuid4()),
                role=Role.ASSISTANT,
                content=content,
            )
            history.append(reply.to_wire())
        self.sessions.update_session(session.session_id, history)

        user_text = latest_user_text(incoming)
        if user_text and session.metadata.get("memory_collector_enabled"):
            self.memory_store.store_memory(session.session_id, user_text, type="conversation")
