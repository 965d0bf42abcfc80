"""Base class shared by local and remote tool providers."""

from abc import ABC, abstractmethod
from typing import Any

from toolrelay.tools.types import ProviderKind, ToolDescriptor, ToolResult


class Provider(ABC):
    """Something that owns and executes tools.

    A provider is either an in-process handler set or a session with a
    remote tool server. The orchestrator only talks to providers through
    this interface.

    Attributes:
        name: Unique provider name
        server_type: Free-form type label shown in listings
    """

    kind: ProviderKind

    def __init__(self, name: str, server_type: str) -> None:
        self.name = name
        self.server_type = server_type
        self.descriptors: tuple[ToolDescriptor, ...] = ()

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the provider is ready to execute calls."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the provider and complete any handshake.

        Raises:
            ProviderConnectError: If the provider cannot be reached or
                rejects the handshake
        """

    @abstractmethod
    async def list_tools(self) -> list[ToolDescriptor]:
        """Discover the tools this provider exposes.

        The result is also cached on the descriptors attribute.
        """

    @abstractmethod
    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: float
    ) -> ToolResult:
        """Execute one tool call.

        Providers report expected failures (bad arguments, handler errors,
        timeouts, transport errors) as a failed ToolResult rather than
        raising.

        Args:
            name: Tool name
            arguments: Decoded argument payload
            timeout: Seconds to wait for the result

        Returns:
            ToolResult with the output or a structured error
        """

    async def close(self) -> None:
        """Release the provider's resources."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} ({self.server_type})>"
