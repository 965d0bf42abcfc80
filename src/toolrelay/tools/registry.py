"""Tool registry mapping tool names to their owning provider.

Ownership is last-writer-wins: when two providers expose the same tool name,
the provider registered later owns it and the earlier one is shadowed for
that name. Unregistering the later provider hands the name back to the
earlier one. Re-registering a provider replaces its descriptor set and makes
it the most recent writer.
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from toolrelay.tools.base import Provider
from toolrelay.tools.types import QualifiedTool, ToolDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolRoute:
    """Resolution result for one tool name.

    Attributes:
        provider: The provider that owns the tool
        descriptor: The owner's descriptor for the tool
    """

    provider: Provider
    descriptor: ToolDescriptor


class ToolRegistry:
    """Thread-safe registry of tool ownership across providers.

    All writes happen under a single lock so that registration order, and
    therefore shadowing, is well defined even when discoveries complete
    concurrently. Resolution is a single dict lookup.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # Registration order; a re-registered provider moves to the end
        self._providers: dict[str, Provider] = {}
        self._descriptors: dict[str, tuple[ToolDescriptor, ...]] = {}
        self._routes: dict[str, ToolRoute] = {}

    def register(self, provider: Provider, descriptors: Iterable[ToolDescriptor]) -> None:
        """Register (or re-register) a provider's tools.

        Args:
            provider: The provider owning the descriptors
            descriptors: The provider's complete descriptor set
        """
        descriptor_set = tuple(descriptors)
        with self._lock:
            self._providers.pop(provider.name, None)
            self._providers[provider.name] = provider
            self._descriptors[provider.name] = descriptor_set

            for descriptor in descriptor_set:
                previous = self._routes.get(descriptor.name)
                if previous is not None and previous.provider.name != provider.name:
                    logger.warning(
                        f"Tool {descriptor.name} from {provider.name} shadows the one "
                        f"from {previous.provider.name}"
                    )

            self._rebuild_routes()

        logger.info(f"Registered {len(descriptor_set)} tools from {provider.name}")

    def unregister(self, provider_name: str) -> Provider | None:
        """Remove a provider and restore any names it was shadowing.

        Args:
            provider_name: Name of the provider to remove

        Returns:
            The removed provider, or None if it was not registered
        """
        with self._lock:
            provider = self._providers.pop(provider_name, None)
            if provider is None:
                return None
            del self._descriptors[provider_name]
            self._rebuild_routes()

        logger.info(f"Unregistered provider {provider_name}")
        return provider

    def _rebuild_routes(self) -> None:
        """Recompute name ownership from registration order. Caller holds the lock."""
        routes: dict[str, ToolRoute] = {}
        for name, provider in self._providers.items():
            for descriptor in self._descriptors[name]:
                routes[descriptor.name] = ToolRoute(provider=provider, descriptor=descriptor)
        self._routes = routes

    def resolve(self, name: str) -> ToolRoute | None:
        """Find the provider that owns a tool name.

        Args:
            name: Exact tool name

        Returns:
            ToolRoute for the owner, or None if no provider exposes the name
        """
        return self._routes.get(name)

    def list_tools(self) -> list[QualifiedTool]:
        """List every descriptor from every registered provider.

        Returns:
            Provider-qualified descriptors in registration order, with
            shadowed entries marked
        """
        with self._lock:
            tools = []
            for name in self._providers:
                for descriptor in self._descriptors[name]:
                    route = self._routes.get(descriptor.name)
                    tools.append(
                        QualifiedTool(
                            provider=name,
                            descriptor=descriptor,
                            shadowed=route is None or route.provider.name != name,
                        )
                    )
            return tools

    def effective_tools(self) -> list[ToolDescriptor]:
        """List the descriptors that resolve, one per tool name.

        This is the tool schema exported to the inference engine.

        Returns:
            Owner descriptors in registration order
        """
        return [tool.descriptor for tool in self.list_tools() if not tool.shadowed]

    def providers(self) -> list[Provider]:
        """List registered providers in registration order."""
        with self._lock:
            return list(self._providers.values())

    def __contains__(self, name: object) -> bool:
        return name in self._routes

    def __len__(self) -> int:
        return len(self._routes)
