# Required-argument validation, run before any tool is dispatched
from typing import Dict, Any, List, Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .tool_registry import ToolRegistry


class MissingToolArgumentsError(Exception):
    """A tool call reached a terminal state without its required arguments"""

    def __init__(self, tool_name: str, missing: List[str]):
        self.tool_name = tool_name
        self.missing = list(missing)
        super().__init__(
            f"Tool '{tool_name}' is missing required arguments: {', '.join(self.missing)}"
        )


def is_empty_argument(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def find_missing_arguments(required: Iterable[str], args: Optional[Dict[str, Any]]) -> List[str]:
    """Return the required keys that are absent or empty in args, in declaration order"""

    args = args or {}
    return [key for key in required if key not in args or is_empty_argument(args[key])]


def validate_tool_call_args(tool_name: str, args: Optional[Dict[str, Any]], registry: "ToolRegistry") -> Dict[str, Any]:
    """Raise MissingToolArgumentsError unless every required argument is present"""

    missing = find_missing_arguments(registry.required_arguments(tool_name), args)
    if missing:
        raise MissingToolArgumentsError(tool_name, missing)
    return args or {}
