"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from toolrelay.models.chat import (
    ChatRequest,
    ChatResponse,
    DoneEvent,
    ErrorEvent,
    MessageListResponse,
    MessageResponse,
    ToolCallInfo,
)
from toolrelay.models.health import HealthResponse
from toolrelay.models.tools import (
    ProviderInfo,
    ProviderListResponse,
    ToolCallBody,
    ToolCallResponse,
    ToolInfo,
    ToolListResponse,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "DoneEvent",
    "ErrorEvent",
    "HealthResponse",
    "MessageListResponse",
    "MessageResponse",
    "ProviderInfo",
    "ProviderListResponse",
    "ToolCallBody",
    "ToolCallInfo",
    "ToolCallResponse",
    "ToolInfo",
    "ToolListResponse",
]
