from typing import Dict, Any, List, Optional, Literal, Union, Annotated
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base for models that travel over the wire with camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Role(str, Enum):
    """Message author role"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ToolCallState(str, Enum):
    """Lifecycle of a tool call inside one message"""
    ANNOUNCED = "announced"
    ARGUMENTS_STREAMING = "arguments_streaming"
    ARGUMENTS_COMPLETE = "arguments_complete"
    EXECUTING = "executing"
    RESOLVED = "resolved"
    FAILED = "failed"


_STATE_ORDER = {
    ToolCallState.ANNOUNCED: 0,
    ToolCallState.ARGUMENTS_STREAMING: 1,
    ToolCallState.ARGUMENTS_COMPLETE: 2,
    ToolCallState.EXECUTING: 3,
    ToolCallState.RESOLVED: 4,
    ToolCallState.FAILED: 4,
}


class TextPart(WireModel):
    """Text segment of a message"""
    type: Literal["text"] = "text"
    text: str = ""


class ToolCallPart(WireModel):
    """Tool call record of a message"""
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args_text: str = ""
    args: Optional[Dict[str, Any]] = None
    result: Optional[Any] = None
    is_error: bool = False
    state: ToolCallState = ToolCallState.ANNOUNCED

    def advance(self, state: ToolCallState) -> None:
        """Move to a later lifecycle state; moving backwards is rejected"""
        if state == self.state:
            return
        if self.state in (ToolCallState.RESOLVED, ToolCallState.FAILED):
            raise ValueError(f"Tool call {self.tool_call_id} is already {self.state.value}")
        if _STATE_ORDER[state] < _STATE_ORDER[self.state]:
            raise ValueError(
                f"Tool call {self.tool_call_id} cannot move from {self.state.value} to {state.value}"
            )
        self.state = state

    @property
    def is_ready(self) -> bool:
        return _STATE_ORDER[self.state] >= _STATE_ORDER[ToolCallState.ARGUMENTS_COMPLETE]


ContentPart = Annotated[Union[TextPart, ToolCallPart], Field(discriminator="type")]


class Message(WireModel):
    """Conversation message; content parts keep their emission order"""
    id: str = ""
    role: Role
    content: List[ContentPart] = Field(default_factory=list)
    tool_call_id: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def _normalise_content(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [{"type": "text", "text": value}] if value else []
        return value

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


class Session(BaseModel):
    """Server-side record of one conversation thread"""
    session_id: str
    messages: List[Any] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    def touch(self, now: datetime) -> None:
        self.last_activity = now

    def get_summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "message_count": len(self.messages),
            "model": self.metadata.get("model"),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


class Memory(BaseModel):
    """Per-session scratch fact"""
    content: str
    type: str = "general"
    timestamp: datetime = Field(default_factory=utcnow)
    session_id: str
    metadata: Optional[Dict[str, Any]] = None


class PendingToolExecution(BaseModel):
    """Links a tool call id to its in-flight execution"""
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=utcnow)


class RunStatus(WireModel):
    """Status of an assistant run as shown to the UI"""
    type: Literal["running", "complete", "incomplete"]
    reason: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def running(cls) -> "RunStatus":
        return cls(type="running")

    @classmethod
    def complete(cls, reason: str = "stop") -> "RunStatus":
        return cls(type="complete", reason=reason)

    @classmethod
    def incomplete(cls, reason: str = "other", error: Optional[str] = None) -> "RunStatus":
        return cls(type="incomplete", reason=reason, error=error)


class RunState(BaseModel):
    """Snapshot yielded by the client runtime"""
    content: List[ContentPart] = Field(default_factory=list)
    status: RunStatus
