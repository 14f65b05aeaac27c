from typing import Dict, List, Any, Optional

import structlog
from langchain_core.tools import BaseTool

logger = structlog.get_logger(__name__)

# Arguments the runtime injects into tools; never supplied by the model
_INJECTED_ARGUMENTS = {"config", "run_manager", "callbacks"}

# Executed by the client UI; the model may call them but the server never runs them
CLIENT_TOOL_IDS = ("tiptap_ai", "docx_ai", "sheet_ai")


class ToolRegistry:
    """Registry of tool definitions and their argument schemas"""

    def __init__(self, load_defaults: bool = True):
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.tool_categories: Dict[str, List[str]] = {}
        if load_defaults:
            self._initialize_default_tools()

    def _initialize_default_tools(self):
        """Register the assistant's tool catalogue"""

        default_tools = [
            {
                "id": "web_search",
                "name": "Web Search",
                "description": "Search the web and read page content for summaries",
                "category": "search",
                "parameters": {
                    "query": {"type": "string", "required": True}
                }
            },
            {
                "id": "tiptap_ai",
                "name": "Document Editor",
                "description": "Deliver AI-generated content to be applied to the document editor",
                "category": "documents",
                "parameters": {
                    "action": {"type": "string", "required": True},
                    "content": {"type": "string", "required": True},
                    "actionType": {"type": "string", "required": True},
                    "selection": {"type": "object"},
                    "targetText": {"type": "string"},
                    "language": {"type": "string"}
                }
            },
            {
                "id": "docx_ai",
                "name": "Word Document",
                "description": "Generate or edit Word documents",
                "category": "documents",
                "parameters": {
                    "action": {"type": "string", "required": True},
                    "documentName": {"type": "string", "required": True},
                    "operations": {"type": "array"},
                    "htmlContent": {"type": "string"},
                    "note": {"type": "string"}
                }
            },
            {
                "id": "sheet_ai",
                "name": "Spreadsheet",
                "description": "Deliver spreadsheet edits as operations or full CSV content",
                "category": "documents",
                "parameters": {
                    "action": {"type": "string", "required": True},
                    "sheetName": {"type": "string"},
                    "operations": {"type": "array"},
                    "csvContent": {"type": "string"},
                    "note": {"type": "string"}
                }
            },
            {
                "id": "store_memory",
                "name": "Store Memory",
                "description": "Store information in memory for future reference",
                "category": "memory",
                "parameters": {
                    "content": {"type": "string", "required": True},
                    "type": {"type": "string", "default": "general"}
                }
            },
            {
                "id": "search_memory",
                "name": "Search Memory",
                "description": "Search stored memories for relevant information",
                "category": "memory",
                "parameters": {
                    "query": {"type": "string", "required": True},
                    "limit": {"type": "integer", "default": 10}
                }
            },
            {
                "id": "search_files",
                "name": "Search Files",
                "description": "Search the user's cloud storage by file name",
                "category": "search",
                "parameters": {
                    "query": {"type": "string", "required": True}
                }
            },
            {
                "id": "send_email",
                "name": "Send Email",
                "description": "Send an email to specified recipients",
                "category": "communication",
                "parameters": {
                    "to": {"type": "string", "required": True},
                    "subject": {"type": "string", "required": True},
                    "body": {"type": "string", "required": True}
                }
            },
        ]

        for tool in default_tools:
            self.register_tool(tool)

    def register_tool(self, tool_config: Dict[str, Any]):
        """Register a new tool, replacing any definition with the same id"""

        tool_id = tool_config["id"]
        category = tool_config.get("category", "general")

        self.tools[tool_id] = tool_config

        if category not in self.tool_categories:
            self.tool_categories[category] = []
        if tool_id not in self.tool_categories[category]:
            self.tool_categories[category].append(tool_id)

    def register_langchain_tool(self, tool: BaseTool, category: str = "general"):
        """Register a LangChain tool using the argument schema the model sees"""

        schema = tool.tool_call_schema
        json_schema = schema if isinstance(schema, dict) else schema.model_json_schema()

        properties = json_schema.get("properties", {})
        required = set(json_schema.get("required", []))
        parameters = {
            name: {
                "type": spec.get("type", "string"),
                "required": name in required,
                "description": spec.get("description"),
            }
            for name, spec in properties.items()
            if name not in _INJECTED_ARGUMENTS
        }

        self.register_tool({
            "id": tool.name,
            "name": tool.name,
            "description": tool.description,
            "category": category,
            "parameters": parameters,
        })
        logger.debug("Registered tool", tool=tool.name, required=sorted(required))

    def get_available_tools(self) -> List[Dict[str, Any]]:
        """Get all available tools"""

        return list(self.tools.values())

    def get_tool_info(self, tool_id: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific tool"""

        return self.tools.get(tool_id)

    def get_tools_by_category(self, category: str) -> List[Dict[str, Any]]:
        """Get tools by category"""

        tool_ids = self.tool_categories.get(category, [])
        return [self.tools[tool_id] for tool_id in tool_ids if tool_id in self.tools]

    def required_arguments(self, tool_id: str) -> List[str]:
        """Names of the arguments a tool cannot run without; unknown tools require none"""

        tool = self.tools.get(tool_id)
        if not tool:
            return []
        return [
            name for name, spec in tool.get("parameters", {}).items()
            if spec.get("required")
        ]

    def function_schema(self, tool_id: str) -> Optional[Dict[str, Any]]:
        """Tool definition in the function-calling format chat models bind"""

        tool = self.tools.get(tool_id)
        if not tool:
            return None

        properties = {}
        for name, spec in tool.get("parameters", {}).items():
            prop = {"type": spec.get("type", "string")}
            if spec.get("description"):
                prop["description"] = spec["description"]
            properties[name] = prop

        return {
            "type": "function",
            "function": {
                "name": tool_id,
                "description": tool.get("description", ""),
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": self.required_arguments(tool_id),
                },
            },
        }
