"""Pydantic models for chat API requests and responses.

This module defines the request and response schemas for the chat endpoints,
including the events sent by the streaming endpoint.
"""

from pydantic import BaseModel, ConfigDict, Field

from toolrelay.agents.orchestrator import ConversationResult
from toolrelay.conversation.types import AssistantMessage, Message, ToolMessage


class ChatRequest(BaseModel):
    """Request body for POST /api/v1/chat and POST /api/v1/chat/stream."""

    message: str = Field(min_length=1, description="The user message to send.")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "What is 2 + 3?"},
                {"message": "List the files in the current directory"},
            ]
        }
    )


class ToolCallInfo(BaseModel):
    """A tool call requested by the assistant."""

    call_id: str
    name: str
    arguments: str = Field(description="JSON-encoded argument object")


class MessageResponse(BaseModel):
    """Response schema for a single conversation message."""

    role: str = Field(description="Message role")
    content: str = Field(description="Message content")
    message_id: str = Field(description="Unique message identifier")
    timestamp: str = Field(description="ISO 8601 timestamp")
    tool_calls: list[ToolCallInfo] | None = Field(
        default=None, description="Tool calls requested by the assistant (if any)"
    )
    tool_call_id: str | None = Field(
        default=None, description="Call answered by this tool message"
    )
    tool_name: str | None = Field(default=None, description="Tool that produced the result")
    error: str | None = Field(default=None, description="Error kind of a failed tool call")

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        """Build the response schema for any message type."""
        data = {
            "role": message.role,
            "content": message.content,
            "message_id": message.message_id,
            "timestamp": message.timestamp,
        }
        if isinstance(message, AssistantMessage) and message.tool_calls:
            data["tool_calls"] = [
                ToolCallInfo(call_id=call.call_id, name=call.name, arguments=call.arguments)
                for call in message.tool_calls
            ]
        if isinstance(message, ToolMessage):
            data["tool_call_id"] = message.tool_call_id
            data["tool_name"] = message.tool_name
            data["error"] = message.error
        return cls(**data)


class ChatResponse(BaseModel):
    """Response body for the non-streaming chat endpoint."""

    stop_reason: str = Field(description="final_answer or round_budget_exhausted")
    rounds: int = Field(description="Tool-dispatch rounds performed")
    message: MessageResponse | None = Field(
        default=None, description="The final assistant message, if any"
    )
    messages: list[MessageResponse] = Field(
        default_factory=list, description="Every message appended during the run"
    )

    @classmethod
    def from_result(cls, result: ConversationResult) -> "ChatResponse":
        return cls(
            stop_reason=result.stop_reason.value,
            rounds=result.rounds,
            message=(
                MessageResponse.from_message(result.final_message)
                if result.final_message
                else None
            ),
            messages=[MessageResponse.from_message(m) for m in result.messages],
        )


class MessageListResponse(BaseModel):
    """Response for GET /api/v1/chat/messages."""

    messages: list[MessageResponse]
    count: int


class DoneEvent(BaseModel):
    """SSE event sent when a streamed run finishes."""

    stop_reason: str
    rounds: int


class ErrorEvent(BaseModel):
    """SSE event sent when a streamed run fails."""

    code: str
    message: str
    details: dict = Field(default_factory=dict)
