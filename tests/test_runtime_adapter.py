from __future__ import annotations

import asyncio
import json

import httpx

from assistant_runtime.application.runtime.runtime_adapter import (
    LocalRuntimeAdapter, collect_text, final_state
)
from assistant_runtime.domain.models.conversation import TextPart, ToolCallPart
from assistant_runtime.infrastructure.clients.assistant_client import AssistantStreamClient
from assistant_runtime.infrastructure.clients.base import CollaboratorError


def frame(payload) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


class FakeTransport:
    """Yields scripted byte chunks; records whether the stream was closed."""

    def __init__(self, chunks, error=None, hang=False):
        self.chunks = chunks
        self.error = error
        self.hang = hang
        self.closed = False
        self.requests = []

    async def stream(self, messages, session_id=None):
        self.requests.append({"messages": messages, "session_id": session_id})
        try:
            for chunk in self.chunks:
                yield chunk
            if self.error is not None:
                raise self.error
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed = True


TOOL_PART = {
    "type": "tool-call",
    "toolCallId": "call_1",
    "toolName": "docx_ai",
    "args": {"action": "create", "documentName": "Plan"},
    "state": "arguments_complete",
}


async def test_states_accumulate_in_receipt_order():
    transport = FakeTransport([
        frame({"type": "text-delta", "text": "Hel"}),
        frame({"type": "text-delta", "text": "lo"}),
        frame({"type": "tool-call-start", "part": TOOL_PART}),
        frame({"type": "tool-call", "part": {**TOOL_PART, "state": "resolved", "result": "ok"}}),
        frame({"type": "text-delta", "text": " done"}),
        frame({"type": "message-end", "status": {"type": "complete", "reason": "stop"}}),
    ])

    states = [s async for s in LocalRuntimeAdapter(transport).run([{"role": "user", "content": "hi"}])]

    assert states[0].status.type == "running"
    assert states[0].content == []
    assert states[2].content == [TextPart(text="Hello")]

    final = states[-1]
    assert final.status.type == "complete"
    assert [type(p) for p in final.content] == [TextPart, ToolCallPart, TextPart]
    assert final.content[1].result == "ok"
    assert final.content[2].text == " done"
    assert transport.closed


async def test_earlier_snapshots_are_not_mutated():
    transport = FakeTransport([
        frame({"type": "text-delta", "text": "a"}),
        frame({"type": "text-delta", "text": "b"}),
        frame({"type": "message-end", "status": {"type": "complete"}}),
    ])

    states = [s async for s in LocalRuntimeAdapter(transport).run([])]

    assert states[1].content[0].text == "a"
    assert states[2].content[0].text == "ab"


async def test_stream_without_message_end_is_incomplete():
    transport = FakeTransport([frame({"type": "text-delta", "text": "cut off"})])

    state = await final_state(LocalRuntimeAdapter(transport).run([]))

    assert state.status.type == "incomplete"
    assert state.status.reason == "other"
    assert state.content == [TextPart(text="cut off")]


async def test_transport_error_is_surfaced_as_incomplete():
    transport = FakeTransport(
        [frame({"type": "text-delta", "text": "x"})],
        error=CollaboratorError("assistant stream", 500, "upstream exploded"),
    )

    state = await final_state(LocalRuntimeAdapter(transport).run([]))

    assert state.status.type == "incomplete"
    assert state.status.reason == "other"
    assert "upstream exploded" in state.status.error


async def test_abort_stops_reading_and_closes_transport():
    transport = FakeTransport([frame({"type": "text-delta", "text": "first"})], hang=True)
    abort = asyncio.Event()
    states = []

    async def consume():
        async for state in LocalRuntimeAdapter(transport).run([], abort_event=abort):
            states.append(state)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    abort.set()
    await asyncio.wait_for(task, timeout=1)

    assert [s.status.type for s in states] == ["running", "running"]
    assert states[-1].content == [TextPart(text="first")]
    assert transport.closed


async def test_completed_run_with_abort_event_leaves_no_tasks_behind():
    transport = FakeTransport([
        frame({"type": "text-delta", "text": "Hi"}),
        frame({"type": "message-end", "status": {"type": "complete", "reason": "stop"}}),
    ])
    before = asyncio.all_tasks()

    final = await final_state(LocalRuntimeAdapter(transport).run([], abort_event=asyncio.Event()))

    assert final.status.type == "complete"
    assert asyncio.all_tasks() - before == set()
    assert transport.closed


async def test_http_transport_end_to_end():
    body = (
        frame({"type": "text-delta", "text": "Scheduled "})
        + b"data: {garbage}\n\n"
        + frame({"type": "text-delta", "text": "report ready"})
        + frame({"type": "message-end", "status": {"type": "complete"}})
    )
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

    client = AssistantStreamClient("http://assistant", transport=httpx.MockTransport(handler)).with_token("tok")

    text = await collect_text(LocalRuntimeAdapter(client).run([{"role": "user", "content": "go"}], session_id="s9"))

    assert text == "Scheduled report ready"
    assert seen["body"] == {"messages": [{"role": "user", "content": "go"}], "sessionId": "s9"}
    assert seen["auth"] == "Bearer tok"


async def test_http_error_status_is_incomplete_with_server_text():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="assistant unavailable")

    client = AssistantStreamClient("http://assistant", transport=httpx.MockTransport(handler))

    state = await final_state(LocalRuntimeAdapter(client).run([]))

    assert state.status.type == "incomplete"
    assert state.status.reason == "other"
    assert "assistant unavailable" in state.status.error
