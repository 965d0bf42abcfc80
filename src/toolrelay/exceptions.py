"""Exception types raised by toolrelay.

Only connection-time and generation-time failures are raised to callers.
Errors that happen while resolving or running a tool are carried as
ToolResult values instead (see toolrelay.tools.types).
"""


class ToolRelayError(Exception):
    """Base class for all toolrelay errors."""


class GenerationError(ToolRelayError):
    """The inference engine failed to produce a turn."""


class ProviderConnectError(ToolRelayError):
    """A tool provider could not be reached or failed its handshake.

    Attributes:
        provider: Name of the provider that failed
        reason: Human-readable cause
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Failed to connect to provider {provider}: {reason}")


class NoProvidersConnectedError(ToolRelayError):
    """Every configured tool provider failed to connect."""
