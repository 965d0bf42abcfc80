"""Provider construction and tool discovery.

Providers are connected and asked for their tools in parallel. Providers
that fail are logged and left out; the survivors are registered in
configuration order so that last-writer-wins shadowing does not depend on
which discovery happened to finish first.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from toolrelay.exceptions import NoProvidersConnectedError, ProviderConnectError
from toolrelay.tools.base import Provider
from toolrelay.tools.local import LocalProvider, builtin_tools
from toolrelay.tools.registry import ToolRegistry
from toolrelay.tools.remote import RemoteProvider
from toolrelay.tools.safety import SafetyPolicy
from toolrelay.tools.types import ToolDescriptor

if TYPE_CHECKING:
    from toolrelay.config import ToolRelaySettings

logger = logging.getLogger(__name__)


def build_providers(settings: "ToolRelaySettings", policy: SafetyPolicy) -> list[Provider]:
    """Create (unconnected) providers from configuration.

    Args:
        settings: Application settings
        policy: Safety policy for the local shell_command handler

    Returns:
        The local provider (if enabled) followed by the enabled remote servers
    """
    providers: list[Provider] = []

    if settings.local_tools_enabled:
        providers.append(
            LocalProvider(builtin_tools(policy, command_tools=settings.command_tools))
        )

    for server in settings.enabled_servers:
        providers.append(
            RemoteProvider(
                name=server.name,
                host=server.host,
                port=server.port,
                server_type=server.type,
                sse_path=settings.sse_path,
                client_name=settings.client_name,
                client_version=settings.client_version,
                connect_timeout=settings.connect_timeout,
                command_tools=settings.command_tools,
            )
        )

    return providers


async def _discover(provider: Provider) -> list[ToolDescriptor] | None:
    """Connect one provider and list its tools.

    Returns:
        The provider's descriptors, or None if it could not be used
    """
    try:
        await provider.connect()
        descriptors = await provider.list_tools()
    except ProviderConnectError as e:
        logger.error(str(e))
        return None
    except Exception as e:
        logger.error(f"Error connecting to {provider.name}: {e}")
        await provider.close()
        return None

    logger.info(f"Connected to {provider.name} ({len(descriptors)} tools)")
    return descriptors


async def discover_providers(
    providers: Sequence[Provider], registry: ToolRegistry
) -> list[Provider]:
    """Connect all providers and register the ones that succeed.

    Args:
        providers: Providers to connect, in configuration order
        registry: Registry receiving the discovered tools

    Returns:
        The connected providers, in configuration order

    Raises:
        NoProvidersConnectedError: If no provider could be connected
    """
    results = await asyncio.gather(*(_discover(provider) for provider in providers))

    connected: list[Provider] = []
    for provider, descriptors in zip(providers, results):
        if descriptors is None:
            continue
        registry.register(provider, descriptors)
        connected.append(provider)

    if not connected:
        raise NoProvidersConnectedError("No tool providers connected")

    logger.info(f"{len(connected)} of {len(providers)} providers connected")
    return connected
