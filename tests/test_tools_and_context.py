from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from assistant_runtime.domain.context.context_manager import ContextManager, to_langchain_messages
from assistant_runtime.domain.context.memory.memory_store import MemoryStore
from assistant_runtime.domain.context.state.session_registry import SessionRegistry
from assistant_runtime.domain.tool.memory_tools import build_memory_tools
from assistant_runtime.domain.tool.tool_registry import ToolRegistry
from assistant_runtime.domain.tool.tool_validator import (
    MissingToolArgumentsError, find_missing_arguments, is_empty_argument, validate_tool_call_args
)


@pytest.mark.parametrize("value, empty", [
    (None, True), ("", True), ("  ", True), ([], True), ({}, True),
    ("x", False), (0, False), (False, False), (["a"], False),
])
def test_is_empty_argument(value, empty):
    assert is_empty_argument(value) is empty


def test_required_arguments_follow_declaration_order(registry):
    assert registry.required_arguments("tiptap_ai") == ["action", "content", "actionType"]
    assert registry.required_arguments("unknown_tool") == []
    assert find_missing_arguments(["a", "b"], {"b": "x"}) == ["a"]


def test_validate_tool_call_args(registry):
    args = {"action": "create", "documentName": "Plan"}
    assert validate_tool_call_args("docx_ai", args, registry) is args

    with pytest.raises(MissingToolArgumentsError, match="documentName"):
        validate_tool_call_args("docx_ai", {"action": "create"}, registry)


def test_function_schema_lists_required_arguments(registry):
    schema = registry.function_schema("docx_ai")

    assert schema["function"]["name"] == "docx_ai"
    assert schema["function"]["parameters"]["required"] == ["action", "documentName"]
    assert "operations" in schema["function"]["parameters"]["properties"]
    assert registry.function_schema("nope") is None


def test_langchain_tools_register_without_injected_config():
    registry = ToolRegistry(load_defaults=False)
    for tool in build_memory_tools(MemoryStore()):
        registry.register_langchain_tool(tool, category="memory")

    assert registry.required_arguments("store_memory") == ["content"]
    assert "config" not in registry.get_tool_info("store_memory")["parameters"]
    assert [t["id"] for t in registry.get_tools_by_category("memory")] == ["store_memory", "search_memory"]


def test_memory_tools_are_scoped_to_the_thread():
    store = MemoryStore()
    store_memory, search_memory = build_memory_tools(store)
    config = {"configurable": {"thread_id": "thread-1"}}

    confirmation = store_memory.invoke({"content": "Deadline is Friday", "type": "task"}, config=config)

    assert confirmation == "Memory stored: Deadline is Friday"
    assert store.memories["thread-1"][0].type == "task"
    assert "Deadline is Friday" in search_memory.invoke({"query": "deadline"}, config=config)
    assert search_memory.invoke(
        {"query": "deadline"}, config={"configurable": {"thread_id": "other"}}
    ).startswith("No memories found")


def test_wire_assistant_message_expands_tool_results():
    converted = to_langchain_messages({
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Done."},
            {
                "type": "tool-call", "toolCallId": "c1", "toolName": "sheet_ai",
                "args": {"action": "update"}, "result": {"ok": True},
            },
        ],
    })

    assert isinstance(converted[0], AIMessage)
    assert converted[0].tool_calls[0]["args"] == {"action": "update"}
    assert isinstance(converted[1], ToolMessage)
    assert converted[1].tool_call_id == "c1"
    assert converted[1].content == '{"ok": true}'


def test_wire_tool_message_needs_its_call_id():
    converted = to_langchain_messages({
        "role": "tool", "toolCallId": "c1", "content": [{"type": "text", "text": "42 rows"}],
    })

    assert isinstance(converted[0], ToolMessage)
    assert converted[0].tool_call_id == "c1"
    assert converted[0].content == "42 rows"
    assert to_langchain_messages({"role": "tool", "content": "orphan"}) == []


def test_build_messages_adds_prompt_and_memories(clock):
    store = MemoryStore(clock=clock)
    store.store_memory("s1", "The quarterly budget is 10k")
    session = SessionRegistry(clock=clock).create_session("s1")
    manager = ContextManager(store)

    messages = manager.build_messages(session, [{"role": "user", "content": "What is our budget?"}])

    assert isinstance(messages[0], SystemMessage)
    assert "quarterly budget" in messages[1].content
    assert isinstance(messages[-1], HumanMessage)
    assert messages[-1].content == "What is our budget?"


def test_build_messages_trims_long_history(clock):
    session = SessionRegistry(clock=clock).create_session("s1", {
        "max_past_messages_for_subagents": 4,
        "memory_injection_enabled": False,
        "system_prompt": "",
    })
    incoming = []
    for i in range(10):
        incoming.append({"role": "user", "content": f"q{i}"})
        incoming.append({"role": "assistant", "content": f"a{i}"})
    incoming.append({"role": "user", "content": "last"})

    messages = ContextManager(MemoryStore()).build_messages(session, incoming)

    assert len(messages) <= 4
    assert isinstance(messages[0], HumanMessage)
    assert messages[-1].content == "last"
