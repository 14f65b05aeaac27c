"""Client side of the assistant stream.

``LocalRuntimeAdapter.run`` POSTs the conversation, decodes the frame stream
and yields ``RunState`` snapshots a UI can render as they arrive.
"""

from typing import Dict, List, Any, Optional, AsyncIterator, AsyncIterable
import asyncio

import httpx
import structlog

from assistant_runtime.application.stream.frame_parser import parse_event_stream
from assistant_runtime.application.stream.schema.events import (
    TextDeltaEvent, ToolCallEvent, ToolCallStartEvent, MessageEndEvent
)
from assistant_runtime.domain.models.conversation import (
    ContentPart, RunState, RunStatus, TextPart, ToolCallPart
)
from assistant_runtime.infrastructure.clients.assistant_client import AssistantStreamClient
from assistant_runtime.infrastructure.clients.base import CollaboratorError

logger = structlog.get_logger(__name__)


class StreamAborted(Exception):
    pass


async def _until_aborted(
    chunks: AsyncIterable[bytes],
    abort_event: Optional[asyncio.Event],
) -> AsyncIterator[bytes]:
    """Relay chunks until the stream ends or ``abort_event`` is set, whichever comes first"""

    iterator = chunks.__aiter__()
    if abort_event is None:
        async for chunk in iterator:
            yield chunk
        return

    aborted = asyncio.ensure_future(abort_event.wait())
    try:
        while True:
            next_chunk = asyncio.ensure_future(iterator.__anext__())
            done, _ = await asyncio.wait({next_chunk, aborted}, return_when=asyncio.FIRST_COMPLETED)
            if next_chunk not in done:
                next_chunk.cancel()
                await asyncio.gather(next_chunk, return_exceptions=True)
                raise StreamAborted()
            try:
                chunk = next_chunk.result()
            except StopAsyncIteration:
                return
            yield chunk
            if abort_event.is_set():
                raise StreamAborted()
    finally:
        aborted.cancel()
        await asyncio.gather(aborted, return_exceptions=True)


class LocalRuntimeAdapter:
    """Adapts the assistant event stream into incremental run states"""

    def __init__(self, transport: AssistantStreamClient):
        self.transport = transport

    async def run(
        self,
        messages: List[Dict[str, Any]],
        abort_event: Optional[asyncio.Event] = None,
        session_id: Optional[str] = None,
    ) -> AsyncIterator[RunState]:
        content: List[ContentPart] = []
        yield RunState(content=[], status=RunStatus.running())

        stream = self.transport.stream(messages, session_id=session_id)
        relay = _until_aborted(stream, abort_event)
        events = parse_event_stream(relay)
        final: Optional[RunStatus] = None
        try:
            async for event in events:
                if isinstance(event, TextDeltaEvent):
                    self._append_text(content, event.text)
                elif isinstance(event, (ToolCallEvent, ToolCallStartEvent)):
                    self._upsert_tool_call(content, event.part)
                elif isinstance(event, MessageEndEvent):
                    final = event.status
                    break
                yield self._snapshot(content, RunStatus.running())
        except StreamAborted:
            logger.info("Run aborted by caller", parts=len(content))
            return
        except (CollaboratorError, httpx.HTTPError) as e:
            logger.warning("Assistant stream failed", error=str(e))
            final = RunStatus.incomplete(reason="other", error=str(e))
        finally:
            await events.aclose()
            await relay.aclose()
            await stream.aclose()

        if final is None:
            logger.warning("Assistant stream closed without message-end")
            final = RunStatus.incomplete(reason="other")
        yield self._snapshot(content, final)

    @staticmethod
    def _append_text(content: List[ContentPart], text: str):
        if content and isinstance(content[-1], TextPart):
            content[-1] = TextPart(text=content[-1].text + text)
        else:
            content.append(TextPart(text=text))

    @staticmethod
    def _upsert_tool_call(content: List[ContentPart], part: ToolCallPart):
        for i, existing in enumerate(content):
            if isinstance(existing, ToolCallPart) and existing.tool_call_id == part.tool_call_id:
                content[i] = part
                return
        content.append(part)

    @staticmethod
    def _snapshot(content: List[ContentPart], status: RunStatus) -> RunState:
        return RunState(content=[part.model_copy() for part in content], status=status)


async def final_state(run: AsyncIterable[RunState]) -> RunState:
    """Drain a run and return its last state"""
    last: Optional[RunState] = None
    async for state in run:
        last = state
    if last is None:
        return RunState(status=RunStatus.incomplete(reason="other"))
    return last


def run_text(state: RunState) -> str:
    return "".join(part.text for part in state.content if isinstance(part, TextPart))


async def collect_text(run: AsyncIterable[RunState]) -> str:
    """Drain a run and return its final text"""
    return run_text(await final_state(run))
