"""Tool server exposing the local handler set over MCP/SSE.

Lets other clients (including another toolrelay instance configured with
--add-server) reach the built-in tools remotely.
"""

import logging

from mcp.server.fastmcp import FastMCP

from toolrelay.tools.local import LocalProvider

logger = logging.getLogger(__name__)

SERVER_INSTRUCTIONS = (
    "Tools for basic calculations and for running a small set of read-only "
    "shell commands."
)


def create_tools_server(
    provider: LocalProvider,
    host: str = "localhost",
    port: int = 8889,
    name: str = "toolrelay-tools",
) -> FastMCP:
    """Create a FastMCP server for a local provider's tools.

    Handlers keep their own argument validation and policy checks; a
    ToolInvocationError raised by a handler is reported to the client as a
    tool error result.

    Args:
        provider: The local handler set to expose
        host: Interface to bind
        port: Port to bind
        name: Server name sent in the handshake

    Returns:
        The configured (not yet running) server
    """
    server = FastMCP(name=name, instructions=SERVER_INSTRUCTIONS, host=host, port=port)

    for tool in provider.tools:
        server.add_tool(tool.func, name=tool.name, description=tool.description)
        logger.debug(f"Exposing tool {tool.name}")

    logger.info(f"Tools server {name} configured with {len(provider.tools)} tools")
    return server
