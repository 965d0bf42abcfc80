"""Conversation orchestration.

This package provides the orchestrator that alternates between model
generation and tool dispatch, and the context object that wires it to the
engine, registry and providers.
"""

from toolrelay.agents.context import AgentContext, build_context
from toolrelay.agents.orchestrator import (
    ConversationResult,
    MessageAppended,
    Orchestrator,
    OrchestratorState,
    PendingToolCall,
    RunFinished,
    StopReason,
)

__all__ = [
    "AgentContext",
    "ConversationResult",
    "MessageAppended",
    "Orchestrator",
    "OrchestratorState",
    "PendingToolCall",
    "RunFinished",
    "StopReason",
    "build_context",
]
