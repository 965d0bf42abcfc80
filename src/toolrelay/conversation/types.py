"""Data types for conversation messages.

Each role has its own message type carrying only the fields valid for that
role. Messages are immutable once created.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal


def new_message_id() -> str:
    """Generate a 10-character hexadecimal message id."""
    return uuid.uuid4().hex[:10]


def utc_timestamp() -> str:
    """Get the current UTC time as an ISO 8601 string with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the assistant.

    Attributes:
        call_id: Identifier correlating the request with its tool message
        name: Requested tool name
        arguments: Serialized (JSON) argument payload, exactly as emitted
    """

    call_id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class SystemMessage:
    """A system prompt message."""

    content: str
    role: Literal["system"] = field(default="system", init=False)
    message_id: str = field(default_factory=new_message_id)
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class UserMessage:
    """A message from the user."""

    content: str
    role: Literal["user"] = field(default="user", init=False)
    message_id: str = field(default_factory=new_message_id)
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class AssistantMessage:
    """A turn produced by the model, possibly requesting tool calls."""

    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    role: Literal["assistant"] = field(default="assistant", init=False)
    message_id: str = field(default_factory=new_message_id)
    timestamp: str = field(default_factory=utc_timestamp)


@dataclass(frozen=True)
class ToolMessage:
    """The result (or error) of one tool call.

    Attributes:
        content: Result text, or the error text for failed calls
        tool_call_id: Id of the ToolCallRequest this message answers
        tool_name: Name of the tool that was requested
        error: Error kind value for failed calls, None on success
    """

    content: str
    tool_call_id: str
    tool_name: str = ""
    error: str | None = None
    role: Literal["tool"] = field(default="tool", init=False)
    message_id: str = field(default_factory=new_message_id)
    timestamp: str = field(default_factory=utc_timestamp)


# Union type for all message types
Message = SystemMessage | UserMessage | AssistantMessage | ToolMessage
