"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject common dependencies like settings and the agent
context.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from toolrelay.agents import AgentContext
from toolrelay.config import ToolRelaySettings


@lru_cache
def get_settings() -> ToolRelaySettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the TOOLRELAY_ prefix.

    Returns:
        ToolRelaySettings: The application configuration settings.
    """
    return ToolRelaySettings()


def get_context(request: Request) -> AgentContext:
    """Get the agent context from app state.

    The context is built during application startup and holds the engine,
    registry, providers, orchestrator and the current conversation.

    Args:
        request: The FastAPI request object.

    Returns:
        AgentContext: The shared agent context.

    Raises:
        HTTPException: If the context is not initialized (503 Service Unavailable).
    """
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=503,
            detail={
                "error": {
                    "code": "not_initialized",
                    "message": "Agent context not initialized",
                    "details": {},
                }
            },
        )
    return context
