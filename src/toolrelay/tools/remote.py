"""Remote tool provider backed by an MCP session over SSE.

The session lives inside a dedicated runner task for as long as the provider
is open. Keeping the transport's context managers in one task lets the
provider be connected during parallel discovery and closed later from any
other task.
"""

import asyncio
import logging
from collections.abc import Collection
from typing import Any

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND, Implementation

from toolrelay.exceptions import ProviderConnectError
from toolrelay.tools.base import Provider
from toolrelay.tools.types import ProviderKind, ToolDescriptor, ToolErrorKind, ToolResult

logger = logging.getLogger(__name__)

CLOSE_TIMEOUT = 5.0

_MCP_ERROR_KINDS = {
    INVALID_PARAMS: ToolErrorKind.INVALID_PARAMETER,
    INTERNAL_ERROR: ToolErrorKind.INTERNAL_ERROR,
    METHOD_NOT_FOUND: ToolErrorKind.UNKNOWN_TOOL,
}


def _describe(exc: BaseException) -> str:
    """Get a readable message, unwrapping task-group exception groups."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return str(exc) or type(exc).__name__


def _content_text(blocks: list[Any]) -> str:
    """Join the text of MCP content blocks, serializing non-text blocks."""
    parts: list[str] = []
    for block in blocks:
        text = getattr(block, "text", None)
        if isinstance(text, str):
            parts.append(text)
        else:
            parts.append(block.model_dump_json())
    return "\n".join(parts)


class RemoteProvider(Provider):
    """Provider that forwards calls to a remote tool server.

    Attributes:
        host: Tool server hostname
        port: Tool server port
        url: SSE endpoint URL
        server_info: Server identity returned by the handshake
    """

    kind = ProviderKind.REMOTE

    def __init__(
        self,
        name: str,
        host: str,
        port: int,
        server_type: str = "custom",
        *,
        sse_path: str = "/sse",
        client_name: str = "toolrelay",
        client_version: str = "0.1.0",
        connect_timeout: float = 30.0,
        command_tools: Collection[str] = (),
    ) -> None:
        """Initialize the provider without connecting.

        Args:
            name: Provider name
            host: Tool server hostname
            port: Tool server port
            server_type: Type label shown in listings
            sse_path: Path of the SSE endpoint
            client_name: Client name sent in the handshake
            client_version: Client version sent in the handshake
            connect_timeout: Seconds allowed for connect, handshake and discovery
            command_tools: Tool names to flag as command-executing
        """
        super().__init__(name, server_type)
        self.host = host
        self.port = port
        self.url = f"http://{host}:{port}{sse_path}"
        self.client_name = client_name
        self.client_version = client_version
        self.connect_timeout = connect_timeout
        self.command_tools = frozenset(command_tools)
        self.server_info: Implementation | None = None

        self._session: ClientSession | None = None
        self._initialized = False
        self._runner: asyncio.Task | None = None
        self._ready: asyncio.Future | None = None
        self._shutdown: asyncio.Event | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None and self._initialized

    async def _run_session(self) -> None:
        """Hold the transport and session open until shutdown is requested."""
        assert self._ready is not None and self._shutdown is not None
        client_info = Implementation(name=self.client_name, version=self.client_version)

        try:
            async with sse_client(
                url=self.url, timeout=self.connect_timeout
            ) as streams, ClientSession(*streams, client_info=client_info) as session:
                self._session = session
                if not self._ready.done():
                    self._ready.set_result(session)
                await self._shutdown.wait()
        except Exception as e:
            if not self._ready.done():
                self._ready.set_exception(e)
            else:
                logger.warning(f"Session with {self.name} ended: {_describe(e)}")
        finally:
            self._session = None
            self._initialized = False

    async def open_session(self) -> ClientSession:
        """Open the transport to the tool server.

        Returns:
            The open (not yet initialized) client session

        Raises:
            ProviderConnectError: If the server cannot be reached in time
        """
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._shutdown = asyncio.Event()
        self._runner = asyncio.create_task(
            self._run_session(), name=f"tool-session-{self.name}"
        )

        try:
            return await asyncio.wait_for(
                asyncio.shield(self._ready), timeout=self.connect_timeout
            )
        except Exception as e:
            await self.close()
            raise ProviderConnectError(self.name, _describe(e)) from e

    async def initialize(self) -> bool:
        """Perform the initialize handshake.

        Returns:
            True if the server accepted the handshake, False otherwise
        """
        if self._session is None:
            logger.error(f"Cannot initialize {self.name}: no open session")
            return False

        try:
            result = await asyncio.wait_for(
                self._session.initialize(), timeout=self.connect_timeout
            )
        except Exception as e:
            logger.error(f"Failed to initialize connection to {self.name}: {_describe(e)}")
            return False

        self.server_info = result.serverInfo
        self._initialized = True
        logger.info(
            f"Initialized {self.name} ({result.serverInfo.name} {result.serverInfo.version})"
        )
        return True

    async def connect(self) -> None:
        await self.open_session()
        if not await self.initialize():
            await self.close()
            raise ProviderConnectError(self.name, "initialize handshake failed")

    async def list_tools(self) -> list[ToolDescriptor]:
        if self._session is None or not self._initialized:
            raise ProviderConnectError(self.name, "not connected")

        result = await asyncio.wait_for(
            self._session.list_tools(), timeout=self.connect_timeout
        )
        descriptors = [
            ToolDescriptor(
                name=tool.name,
                description=tool.description or "",
                parameters=dict(tool.inputSchema or {}),
                executes_commands=tool.name in self.command_tools,
            )
            for tool in result.tools
        ]
        self.descriptors = tuple(descriptors)
        logger.debug(f"Discovered {len(descriptors)} tools on {self.name}")
        return descriptors

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: float
    ) -> ToolResult:
        if self._session is None or not self._initialized:
            return ToolResult.failure(
                ToolErrorKind.DISPATCH_FAILURE, f"Provider {self.name} is not connected"
            )

        try:
            result = await asyncio.wait_for(
                self._session.call_tool(name, arguments=arguments), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Tool {name} on {self.name} timed out after {timeout:g}s")
            return ToolResult.failure(
                ToolErrorKind.DISPATCH_FAILURE,
                f"Tool '{name}' on {self.name} timed out after {timeout:g}s",
            )
        except McpError as e:
            kind = _MCP_ERROR_KINDS.get(e.error.code, ToolErrorKind.DISPATCH_FAILURE)
            logger.info(f"Tool {name} on {self.name} failed ({kind.value}): {e.error.message}")
            return ToolResult.failure(kind, e.error.message)
        except Exception as e:
            logger.warning(f"Tool {name} on {self.name} failed: {_describe(e)}")
            return ToolResult.failure(ToolErrorKind.DISPATCH_FAILURE, _describe(e))

        text = _content_text(result.content)
        if result.isError:
            return ToolResult.failure(
                ToolErrorKind.INTERNAL_ERROR, text or f"Tool '{name}' reported an error"
            )
        return ToolResult.success(text)

    async def close(self) -> None:
        """Shut down the session runner, cancelling it if it does not exit."""
        self._initialized = False
        runner, self._runner = self._runner, None
        if runner is None:
            return

        if self._shutdown is not None:
            self._shutdown.set()

        done, _ = await asyncio.wait({runner}, timeout=CLOSE_TIMEOUT)
        if not done:
            runner.cancel()
            await asyncio.wait({runner})

        if self._ready is not None and self._ready.done() and not self._ready.cancelled():
            # Mark a connect failure as retrieved
            self._ready.exception()

        logger.debug(f"Closed session with {self.name}")
