"""Data types for tools, tool results and provider listings.

This module defines the descriptors discovered from providers, the typed
result returned by every dispatch, and the structured error kinds shared by
local handlers, remote providers and the orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ToolErrorKind(str, Enum):
    """Structured error kinds a tool call can end with."""

    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"
    INTERNAL_ERROR = "internal_error"
    UNKNOWN_TOOL = "unknown_tool"
    POLICY_REJECTED = "policy_rejected"
    DISPATCH_FAILURE = "dispatch_failure"


class ProviderKind(str, Enum):
    """The two provider variants."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ToolDescriptor:
    """A tool as advertised by its provider.

    Attributes:
        name: Tool name, unique within its provider
        description: Human-readable description shown to the model
        parameters: JSON schema describing the expected arguments
        executes_commands: Whether the Safety Policy gates this tool
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    executes_commands: bool = False

    def to_schema(self) -> dict[str, Any]:
        """Convert to the function-calling schema used in prompts.

        Returns:
            Dict of the form {"type": "function", "function": {...}}
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class QualifiedTool:
    """A descriptor paired with the name of the provider that exposes it.

    Attributes:
        provider: Name of the owning provider
        descriptor: The tool descriptor
        shadowed: True if a later provider owns this tool name
    """

    provider: str
    descriptor: ToolDescriptor
    shadowed: bool = False


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call.

    A result is either a success payload (error is None) or a structured
    failure whose content holds the cause text.

    Attributes:
        content: Result text, or the error message on failure
        error: Error kind, None on success
    """

    content: str
    error: ToolErrorKind | None = None

    @property
    def ok(self) -> bool:
        """Whether the call succeeded."""
        return self.error is None

    @classmethod
    def success(cls, content: str) -> "ToolResult":
        """Create a successful result."""
        return cls(content=content)

    @classmethod
    def failure(cls, kind: ToolErrorKind, message: str) -> "ToolResult":
        """Create a failed result of the given kind."""
        return cls(content=message, error=kind)

    def to_message_text(self) -> str:
        """Render the result as the text of a tool message.

        Returns:
            The content on success, "Error (<kind>): <message>" on failure
        """
        if self.error is None:
            return self.content
        return f"Error ({self.error.value}): {self.content}"


class ToolInvocationError(Exception):
    """Structured failure raised by a local tool handler.

    Local handlers raise this instead of returning an error string; the
    provider converts it into a failed ToolResult of the same kind.

    Attributes:
        kind: The structured error kind
        message: Human-readable cause
    """

    def __init__(self, kind: ToolErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(message)
