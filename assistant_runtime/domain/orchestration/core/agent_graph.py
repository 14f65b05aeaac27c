from typing import Dict, Any, List, Optional, Sequence, Literal

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langgraph.graph import StateGraph, MessagesState, START, END
from langgraph.prebuilt import ToolNode

logger = structlog.get_logger(__name__)


def create_chat_model(name: str, provider: str, temperature: float) -> BaseChatModel:
    """Chat model from the configured provider; the provider package must be installed"""
    from langchain.chat_models import init_chat_model

    return init_chat_model(name, model_provider=provider, temperature=temperature)


def build_agent_graph(
    model: BaseChatModel,
    tools: Sequence[BaseTool] = (),
    client_tools: Sequence[Dict[str, Any]] = (),
    checkpointer: Optional[Any] = None,
):
    """Compile the tool-calling loop: agent -> tools -> agent until no server tool is called.

    ``tools`` run inside the graph. ``client_tools`` are function schemas the
    model may call but which are executed by the client, so a turn that calls
    one ends with the tool call pending.
    """

    tools = list(tools)
    server_tool_names = {tool.name for tool in tools}
    bindable: List[Any] = [*tools, *client_tools]
    bound = model.bind_tools(bindable) if bindable else model

    async def call_model(state: MessagesState, config: RunnableConfig) -> Dict[str, Any]:
        response = await bound.ainvoke(state["messages"], config)
        return {"messages": [response]}

    def route_tools(state: MessagesState) -> Literal["tools", "__end__"]:
        last = state["messages"][-1]
        calls = last.tool_calls if isinstance(last, AIMessage) else []
        if calls and all(call["name"] in server_tool_names for call in calls):
            return "tools"
        if calls:
            logger.debug("Ending turn on client-executed tool calls", tools=[c["name"] for c in calls])
        return END

    workflow = StateGraph(MessagesState)
    workflow.add_node("agent", call_model)
    workflow.add_edge(START, "agent")

    if tools:
        workflow.add_node("tools", ToolNode(tools, handle_tool_errors=True))
        workflow.add_conditional_edges("agent", route_tools, {"tools": "tools", END: END})
        workflow.add_edge("tools", "agent")
    else:
        workflow.add_edge("agent", END)

    return workflow.compile(checkpointer=checkpointer)
