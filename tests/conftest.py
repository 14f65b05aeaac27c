"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest
from langchain_core.messages import AIMessage

from assistant_runtime.domain.tool.tool_registry import ToolRegistry


class FakeClock:
    """Manually advanced clock for expiry and ordering tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGraph:
    """Stands in for a compiled agent graph in ``stream_mode="values"``.

    Each step appends its messages to the input and yields the full state,
    the way LangGraph does.
    """

    def __init__(self, steps: List[List[Any]] | None = None, error: Exception | None = None):
        self.steps = steps or []
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def astream(self, inputs, config=None, stream_mode=None):
        self.calls.append({"inputs": inputs, "config": config, "stream_mode": stream_mode})
        messages = list(inputs["messages"])
        yield {"messages": list(messages)}
        for step in self.steps:
            messages.extend(step)
            yield {"messages": list(messages)}
        if self.error is not None:
            raise self.error


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def events() -> List[Any]:
    """Collects emitted stream events; pass ``events.append`` as the send callback."""
    return []


@pytest.fixture
def reply_graph() -> FakeGraph:
    return FakeGraph(steps=[[AIMessage(content="Hello there", id="ai-1")]])


@pytest.fixture
def fake_graph():
    """Factory for scripted graphs: ``fake_graph(steps=[[...], ...], error=...)``."""
    return FakeGraph
