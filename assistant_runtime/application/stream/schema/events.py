from typing import Dict, Any, Literal, Union, Annotated
import json
from pydantic import BaseModel, Field, TypeAdapter
from enum import Enum

from assistant_runtime.domain.models.conversation import (
    WireModel, ToolCallPart, RunStatus
)


class EventType(str, Enum):
    """Stream event types"""
    TEXT_DELTA = "text-delta"
    TOOL_CALL = "tool-call"
    TOOL_CALL_START = "tool-call-start"
    MESSAGE_END = "message-end"


class UnknownEventTypeError(ValueError):
    """Raised when a frame carries a type outside the event union"""

    def __init__(self, event_type: Any):
        self.event_type = event_type
        super().__init__(f"Unknown stream event type: {event_type!r}")


class TextDeltaEvent(WireModel):
    """Incremental assistant text"""
    type: Literal["text-delta"] = "text-delta"
    text: str


class ToolCallEvent(WireModel):
    """Tool call part, announced or resolved"""
    type: Literal["tool-call"] = "tool-call"
    part: ToolCallPart


class ToolCallStartEvent(WireModel):
    """Tool call whose required arguments are all present"""
    type: Literal["tool-call-start"] = "tool-call-start"
    part: ToolCallPart


class MessageEndEvent(WireModel):
    """Terminal event of one response"""
    type: Literal["message-end"] = "message-end"
    status: RunStatus


StreamEvent = Annotated[
    Union[TextDeltaEvent, ToolCallEvent, ToolCallStartEvent, MessageEndEvent],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(StreamEvent)
_KNOWN_TYPES = {event_type.value for event_type in EventType}


def decode_event(payload: Dict[str, Any]) -> StreamEvent:
    """Validate one decoded frame payload into a typed event.

    Raises:
        UnknownEventTypeError: the payload's ``type`` is not a stream event
        pydantic.ValidationError: the payload does not match its event shape
    """

    if not isinstance(payload, dict) or payload.get("type") not in _KNOWN_TYPES:
        raise UnknownEventTypeError(payload.get("type") if isinstance(payload, dict) else None)
    return _event_adapter.validate_python(payload)


def encode_frame(event: BaseModel) -> str:
    """Render an event as one Server-Sent-Events frame"""

    data = event.model_dump(mode="json", by_alias=True, exclude_none=True)
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"
