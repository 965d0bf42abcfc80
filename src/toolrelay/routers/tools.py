"""Tool and provider endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from toolrelay.agents import AgentContext
from toolrelay.dependencies import get_context
from toolrelay.models.tools import (
    ProviderInfo,
    ProviderListResponse,
    ToolCallBody,
    ToolCallResponse,
    ToolInfo,
    ToolListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["tools"])


@router.get("/tools", response_model=ToolListResponse)
async def list_tools(context: AgentContext = Depends(get_context)) -> ToolListResponse:
    """List every tool offered by the connected providers.

    Tools whose name is owned by a later provider are included and marked
    as shadowed.
    """
    tools = [ToolInfo.from_qualified(tool) for tool in context.registry.list_tools()]
    return ToolListResponse(tools=tools, count=len(context.registry))


@router.get("/providers", response_model=ProviderListResponse)
async def list_providers(
    context: AgentContext = Depends(get_context),
) -> ProviderListResponse:
    """List the connected tool providers in registration order."""
    return ProviderListResponse(
        providers=[
            ProviderInfo.from_provider(provider) for provider in context.registry.providers()
        ]
    )


@router.post("/tools/{name}/call", response_model=ToolCallResponse)
async def call_tool(
    name: str,
    body: ToolCallBody,
    context: AgentContext = Depends(get_context),
) -> ToolCallResponse:
    """Invoke a tool directly with a literal argument payload.

    The call goes through the same resolution and Safety Policy checks as
    calls requested by the model. Tool-level failures are reported in the
    response body with ok=false.

    Args:
        name: Tool name
        body: Argument payload
        context: Injected agent context

    Returns:
        ToolCallResponse with the output or error

    Raises:
        HTTPException: 404 if no provider offers the tool
    """
    if name not in context.registry:
        raise HTTPException(
            status_code=404,
            detail={
                "error": {
                    "code": "tool_not_found",
                    "message": f"Tool '{name}' not found",
                    "details": {"name": name},
                }
            },
        )

    logger.info(f"Direct invocation of {name}")
    result = await context.orchestrator.invoke(name, body.arguments)
    return ToolCallResponse.from_result(name, result)
