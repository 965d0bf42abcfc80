"""Pydantic models for the tool and provider endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from toolrelay.tools.base import Provider
from toolrelay.tools.types import QualifiedTool, ToolResult


class ToolInfo(BaseModel):
    """One tool as offered by one provider."""

    name: str = Field(description="Tool name")
    description: str = Field(default="", description="What the tool does")
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="JSON schema of the tool's arguments"
    )
    provider: str = Field(description="Name of the provider offering the tool")
    executes_commands: bool = Field(
        default=False, description="Whether the Safety Policy applies to this tool"
    )
    shadowed: bool = Field(
        default=False,
        description="True if a later provider owns this name instead",
    )

    @classmethod
    def from_qualified(cls, tool: QualifiedTool) -> "ToolInfo":
        descriptor = tool.descriptor
        return cls(
            name=descriptor.name,
            description=descriptor.description,
            parameters=descriptor.parameters,
            provider=tool.provider,
            executes_commands=descriptor.executes_commands,
            shadowed=tool.shadowed,
        )


class ToolListResponse(BaseModel):
    """Response for GET /api/v1/tools."""

    tools: list[ToolInfo] = Field(description="All offered tools, provider-qualified")
    count: int = Field(description="Number of names the registry resolves")


class ProviderInfo(BaseModel):
    """A connected tool provider."""

    name: str = Field(description="Provider name")
    kind: str = Field(description="local or remote")
    server_type: str = Field(description="Free-form server type label")
    connected: bool = Field(description="Whether the provider is usable")
    tools: list[str] = Field(default_factory=list, description="Tools it offers")

    @classmethod
    def from_provider(cls, provider: Provider) -> "ProviderInfo":
        return cls(
            name=provider.name,
            kind=provider.kind.value,
            server_type=provider.server_type,
            connected=provider.connected,
            tools=[descriptor.name for descriptor in provider.descriptors],
        )


class ProviderListResponse(BaseModel):
    """Response for GET /api/v1/providers."""

    providers: list[ProviderInfo]


class ToolCallBody(BaseModel):
    """Request body for POST /api/v1/tools/{name}/call."""

    arguments: dict[str, Any] = Field(
        default_factory=dict, description="Literal argument payload"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"arguments": {"expression": "2 + 3"}},
                {"arguments": {"command": "ls -la"}},
            ]
        }
    )


class ToolCallResponse(BaseModel):
    """Result of a direct tool invocation."""

    name: str = Field(description="Tool name")
    ok: bool = Field(description="Whether the call succeeded")
    content: str = Field(description="Tool output, or the error message")
    error: str | None = Field(default=None, description="Error kind on failure")

    @classmethod
    def from_result(cls, name: str, result: ToolResult) -> "ToolCallResponse":
        return cls(
            name=name,
            ok=result.ok,
            content=result.content,
            error=result.error.value if result.error else None,
        )
