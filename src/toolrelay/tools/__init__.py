"""Tool providers, registry, safety policy and discovery.

This package provides the local (in-process) and remote (MCP) tool
providers, the registry that routes a tool name to its owning provider,
the Safety Policy for command-executing tools, and provider discovery.
"""

from toolrelay.tools.base import Provider
from toolrelay.tools.discovery import build_providers, discover_providers
from toolrelay.tools.local import LocalProvider, LocalTool, builtin_tools
from toolrelay.tools.registry import ToolRegistry, ToolRoute
from toolrelay.tools.remote import RemoteProvider
from toolrelay.tools.safety import SafetyPolicy, is_safe
from toolrelay.tools.types import (
    ProviderKind,
    QualifiedTool,
    ToolDescriptor,
    ToolErrorKind,
    ToolInvocationError,
    ToolResult,
)

__all__ = [
    # Providers
    "Provider",
    "LocalProvider",
    "LocalTool",
    "RemoteProvider",
    "builtin_tools",
    # Routing
    "ToolRegistry",
    "ToolRoute",
    "build_providers",
    "discover_providers",
    # Policy
    "SafetyPolicy",
    "is_safe",
    # Types
    "ProviderKind",
    "QualifiedTool",
    "ToolDescriptor",
    "ToolErrorKind",
    "ToolInvocationError",
    "ToolResult",
]
