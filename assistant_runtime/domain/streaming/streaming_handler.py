from typing import Dict, Any, Optional, List, Set, Callable, Iterable, Tuple
import inspect
import json
import uuid

import structlog
from langchain_core.messages import AIMessageChunk

from assistant_runtime.application.stream.schema.events import (
    StreamEvent, TextDeltaEvent, ToolCallEvent, ToolCallStartEvent
)
from assistant_runtime.domain.models.conversation import (
    ContentPart, TextPart, ToolCallPart, ToolCallState, PendingToolExecution
)
from assistant_runtime.domain.tool.tool_registry import ToolRegistry
from assistant_runtime.domain.tool.tool_validator import (
    MissingToolArgumentsError, find_missing_arguments, validate_tool_call_args
)
from assistant_runtime.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

SendCallback = Callable[[StreamEvent], Any]

_TYPE_ALIASES = {
    "ai": "ai",
    "assistant": "ai",
    "aimessage": "ai",
    "aimessagechunk": "ai",
    "tool": "tool",
    "toolmessage": "tool",
    "human": "human",
    "user": "human",
    "system": "system",
}


def _get(message: Any, key: str, default: Any = None) -> Any:
    if isinstance(message, dict):
        return message.get(key, default)
    return getattr(message, key, default)


def _message_type(message: Any) -> str:
    raw = _get(message, "type") or _get(message, "role") or ""
    return _TYPE_ALIASES.get(str(raw).lower(), str(raw).lower())


def _is_streaming_chunk(message: Any) -> bool:
    if isinstance(message, AIMessageChunk):
        return True
    return isinstance(message, dict) and "tool_call_chunks" in message


def _is_terminal_chunk(message: Any) -> bool:
    if _get(message, "chunk_position") == "last":
        return True
    metadata = _get(message, "response_metadata") or {}
    return bool(metadata.get("finish_reason") or metadata.get("stop_reason"))


def _chunk_messages(chunk: Any) -> List[Any]:
    if isinstance(chunk, dict):
        return list(chunk.get("messages") or [])
    if isinstance(chunk, (list, tuple)):
        return list(chunk)
    return list(getattr(chunk, "messages", None) or [])


def _parse_args(args_text: str) -> Optional[Dict[str, Any]]:
    """Arguments as a dict, or None while the JSON is still incomplete"""
    if not args_text.strip():
        return None
    try:
        parsed = json.loads(args_text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _call_args(raw: Any) -> Dict[str, Any]:
    """Arguments of a complete tool call; JSON text is decoded, anything unusable is empty"""
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        return _parse_args(raw) or {}
    return {}


def _text_blocks(content: Any) -> Iterable[Tuple[str, Any]]:
    """Walk message content as ("text", str) and ("tool_use", block) items in order"""
    if isinstance(content, str):
        if content:
            yield "text", content
        return
    for block in content or []:
        if isinstance(block, str):
            if block:
                yield "text", block
        elif isinstance(block, dict):
            block_type = block.get("type")
            if block_type == "text" and block.get("text"):
                yield "text", block["text"]
            elif block_type == "tool_use":
                yield "tool_use", block


class ToolCallAggregator:
    """Turns streamed message chunks into de-duplicated UI events for one response.

    The processed-id sets may be shared with the caller; they are mutated in
    place so each message and tool call is emitted at most once.
    """

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        processed_messages: Optional[Set[str]] = None,
        processed_tool_calls: Optional[Set[str]] = None,
        current_tool_execution: Optional[PendingToolExecution] = None,
    ):
        self.registry = registry or ToolRegistry()
        self.processed_messages = processed_messages if processed_messages is not None else set()
        self.processed_tool_calls = processed_tool_calls if processed_tool_calls is not None else set()
        self.current_tool_execution = current_tool_execution
        self.pending: Dict[str, PendingToolExecution] = {}
        if current_tool_execution is not None:
            self.pending[current_tool_execution.tool_call_id] = current_tool_execution

        self.parts: Dict[str, ToolCallPart] = {}
        self._message_calls: Dict[str, List[str]] = {}
        self._index_keys: Dict[Tuple[str, Any], str] = {}
        self._streamed_messages: Set[str] = set()
        self._segments: List[Any] = []
        self.message_id: Optional[str] = None

    async def process_chunk(self, chunk: Any, send: SendCallback) -> Optional[PendingToolExecution]:
        """Process one decoded chunk and return the current pending tool execution"""

        for message in _chunk_messages(chunk):
            message_type = _message_type(message)

            if message_type == "ai":
                if _is_streaming_chunk(message):
                    await self._process_ai_chunk(message, send)
                else:
                    await self._process_ai_message(message, send)
            elif message_type == "tool":
                await self._process_tool_message(message, send)

        return self.current_tool_execution

    async def finalize(self, send: SendCallback) -> Optional[PendingToolExecution]:
        """End of the response: every streamed tool call must now be complete"""

        for message_id in list(self._message_calls):
            await self._complete_streamed_calls(message_id, send)
        return self.current_tool_execution

    # ---- AI messages ----

    async def _process_ai_message(self, message: Any, send: SendCallback):
        message_id = _get(message, "id")
        if message_id and message_id in self.processed_messages:
            return

        if message_id and message_id in self._streamed_messages:
            # Text already went out as deltas; only settle its tool calls
            await self._complete_streamed_calls(message_id, send)
            self.processed_messages.add(message_id)
            return

        self.message_id = message_id or self.message_id
        tool_calls = [dict(tc) for tc in (_get(message, "tool_calls") or [])]
        for tc in tool_calls:
            tc["args"] = _call_args(tc.get("args"))
            if not tc.get("id"):
                tc["id"] = f"call-{uuid.uuid4().hex[:12]}"
        by_id = {tc["id"]: tc for tc in tool_calls}

        # Ordered plan of emissions, validated as a whole before anything is sent
        plan: List[Tuple[str, Any]] = []
        planned: Set[str] = set()
        for kind, item in _text_blocks(_get(message, "content")):
            if kind == "text":
                plan.append(("text", item))
                continue
            call_id = item.get("id")
            call = by_id.get(call_id) or {
                "id": call_id or f"call-{uuid.uuid4().hex[:12]}",
                "name": item.get("name", ""),
                "args": _call_args(item.get("input")),
            }
            if call["id"] not in planned:
                plan.append(("tool", call))
                planned.add(call["id"])
        for tc in tool_calls:
            if tc["id"] not in planned:
                plan.append(("tool", tc))
                planned.add(tc["id"])

        for kind, item in plan:
            if kind == "tool" and item["id"] not in self.processed_tool_calls:
                try:
                    validate_tool_call_args(item.get("name", ""), item.get("args"), self.registry)
                except MissingToolArgumentsError:
                    metrics.increment_counter("tool_calls.rejected", tags={"tool": item.get("name", "")})
                    raise

        for kind, item in plan:
            if kind == "text":
                await self._send(send, TextDeltaEvent(text=item))
                continue

            call_id = item["id"]
            if call_id in self.processed_tool_calls:
                continue
            args = dict(item["args"])
            part = self.parts.get(call_id) or ToolCallPart(
                tool_call_id=call_id,
                tool_name=item.get("name", ""),
            )
            part.args_text = json.dumps(args)
            self.parts[call_id] = part
            await self._start_tool_call(part, args, send)

        if message_id:
            self.processed_messages.add(message_id)

    async def _process_ai_chunk(self, message: Any, send: SendCallback):
        message_id = _get(message, "id") or ""
        if message_id and message_id in self.processed_messages:
            return
        self._streamed_messages.add(message_id)
        self.message_id = message_id or self.message_id

        for kind, item in _text_blocks(_get(message, "content")):
            if kind == "text":
                await self._send(send, TextDeltaEvent(text=item))

        for fragment in _get(message, "tool_call_chunks") or []:
            await self._absorb_fragment(message_id, fragment, send)

        if _is_terminal_chunk(message):
            await self._complete_streamed_calls(message_id, send)
            if message_id:
                self.processed_messages.add(message_id)

    async def _absorb_fragment(self, message_id: str, fragment: Dict[str, Any], send: SendCallback):
        index = fragment.get("index")
        call_id = fragment.get("id")

        if call_id:
            self._index_keys[(message_id, index)] = call_id
        else:
            call_id = self._index_keys.get((message_id, index))
            if call_id is None:
                logger.debug("Dropping tool call fragment without id", message_id=message_id, index=index)
                return

        if call_id in self.processed_tool_calls and call_id not in self.parts:
            return

        part = self.parts.get(call_id)
        if part is None:
            part = ToolCallPart(tool_call_id=call_id, tool_name=fragment.get("name") or "")
            self.parts[call_id] = part
            self._message_calls.setdefault(message_id, []).append(call_id)
            logger.debug("Tool call announced", tool_call_id=call_id, tool_name=part.tool_name)
        elif fragment.get("name") and not part.tool_name:
            part.tool_name = fragment["name"]

        if part.is_ready:
            return

        if fragment.get("args"):
            part.args_text += fragment["args"]
            part.advance(ToolCallState.ARGUMENTS_STREAMING)

        args = _parse_args(part.args_text)
        if args is None:
            return
        if find_missing_arguments(self.registry.required_arguments(part.tool_name), args):
            return
        await self._start_tool_call(part, args, send)

    async def _complete_streamed_calls(self, message_id: str, send: SendCallback):
        """Terminal point for a streamed message: start complete calls, reject the rest"""

        for call_id in self._message_calls.pop(message_id, []):
            part = self.parts[call_id]
            if part.is_ready:
                continue
            args = _parse_args(part.args_text) or {}
            missing = find_missing_arguments(self.registry.required_arguments(part.tool_name), args)
            if missing:
                part.advance(ToolCallState.FAILED)
                metrics.increment_counter("tool_calls.rejected", tags={"tool": part.tool_name})
                raise MissingToolArgumentsError(part.tool_name, missing)
            await self._start_tool_call(part, args, send)

    async def _start_tool_call(self, part: ToolCallPart, args: Dict[str, Any], send: SendCallback):
        part.args = args
        part.advance(ToolCallState.ARGUMENTS_COMPLETE)
        self.processed_tool_calls.add(part.tool_call_id)

        await self._send(send, ToolCallStartEvent(part=part.model_copy(deep=True)))

        part.advance(ToolCallState.EXECUTING)
        execution = PendingToolExecution(
            tool_call_id=part.tool_call_id,
            tool_name=part.tool_name,
            args=args,
        )
        self.pending[part.tool_call_id] = execution
        self.current_tool_execution = execution

        metrics.increment_counter("tool_calls.started", tags={"tool": part.tool_name})
        logger.info("Tool call ready", tool_call_id=part.tool_call_id, tool_name=part.tool_name)

    # ---- tool results ----

    async def _process_tool_message(self, message: Any, send: SendCallback):
        message_id = _get(message, "id")
        if message_id and message_id in self.processed_messages:
            return

        call_id = _get(message, "tool_call_id")
        if not call_id:
            return

        part = self.parts.get(call_id)
        if part is None:
            part = ToolCallPart(
                tool_call_id=call_id,
                tool_name=_get(message, "name") or "",
                state=ToolCallState.EXECUTING,
            )
            self.parts[call_id] = part

        if part.state in (ToolCallState.RESOLVED, ToolCallState.FAILED):
            return

        failed = _get(message, "status") == "error"
        part.result = _get(message, "content")
        part.is_error = failed
        part.advance(ToolCallState.FAILED if failed else ToolCallState.RESOLVED)

        execution = self.pending.pop(call_id, None)
        if self.current_tool_execution and self.current_tool_execution.tool_call_id == call_id:
            self.current_tool_execution = next(reversed(self.pending.values()), None)

        await self._send(send, ToolCallEvent(part=part.model_copy(deep=True)))

        agent_logger.log_tool_execution(
            tool_name=part.tool_name,
            session_id=structlog.contextvars.get_contextvars().get("session_id", ""),
            input_data=execution.args if execution else (part.args or {}),
            success=not failed,
            error=str(part.result) if failed else None,
        )
        if message_id:
            self.processed_messages.add(message_id)

    def content_parts(self) -> List[ContentPart]:
        """Text and tool calls emitted so far, in emission order"""
        parts: List[ContentPart] = []
        for segment in self._segments:
            if isinstance(segment, TextPart):
                parts.append(segment.model_copy())
            else:
                parts.append(self.parts[segment].model_copy(deep=True))
        return parts

    def _record(self, event: StreamEvent):
        if isinstance(event, TextDeltaEvent):
            if self._segments and isinstance(self._segments[-1], TextPart):
                self._segments[-1].text += event.text
            else:
                self._segments.append(TextPart(text=event.text))
        elif event.part.tool_call_id not in self._segments:
            self._segments.append(event.part.tool_call_id)

    async def _send(self, send: SendCallback, event: StreamEvent):
        self._record(event)
        result = send(event)
        if inspect.isawaitable(result):
            await result


async def process_stream_chunk(
    chunk: Any,
    processed_ai_messages: Set[str],
    processed_tool_calls: Set[str],
    current_tool_execution: Optional[PendingToolExecution],
    send: SendCallback,
    registry: Optional[ToolRegistry] = None,
) -> Optional[PendingToolExecution]:
    """Process a single self-contained chunk; returns the updated pending execution"""

    aggregator = ToolCallAggregator(
        registry=registry,
        processed_messages=processed_ai_messages,
        processed_tool_calls=processed_tool_calls,
        current_tool_execution=current_tool_execution,
    )
    return await aggregator.process_chunk(chunk, send)
