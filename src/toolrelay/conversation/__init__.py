"""Conversation state for toolrelay.

This package provides the append-only message log and the per-role
message types that flow through the orchestrator.
"""

from toolrelay.conversation.conversation import Conversation
from toolrelay.conversation.types import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)

__all__ = [
    # Core classes
    "Conversation",
    # Message types
    "Message",
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
    "ToolMessage",
    "ToolCallRequest",
]
