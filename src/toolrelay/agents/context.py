"""Wiring of the runtime objects shared by the CLI and the HTTP API."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from toolrelay.agents.orchestrator import ConfirmCallback, Orchestrator
from toolrelay.config import ToolRelaySettings
from toolrelay.conversation import Conversation
from toolrelay.engine import InferenceEngine, OllamaEngine
from toolrelay.ollama import OllamaClient
from toolrelay.tools.base import Provider
from toolrelay.tools.discovery import build_providers, discover_providers
from toolrelay.tools.registry import ToolRegistry
from toolrelay.tools.safety import SafetyPolicy

logger = logging.getLogger(__name__)


@dataclass
class AgentContext:
    """Everything needed to run conversations against the connected tools.

    Attributes:
        settings: Application settings
        ollama_client: Client for the inference backend
        engine: Inference engine used by the orchestrator
        policy: Safety Policy for command-executing tools
        registry: Tool registry populated by discovery
        providers: Connected providers, in configuration order
        orchestrator: The orchestrator driving conversations
        conversation: The current conversation
        conversation_lock: Serializes runs against the current conversation
    """

    settings: ToolRelaySettings
    ollama_client: OllamaClient
    engine: InferenceEngine
    policy: SafetyPolicy
    registry: ToolRegistry
    providers: list[Provider]
    orchestrator: Orchestrator
    conversation: Conversation
    conversation_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def new_conversation(self) -> Conversation:
        """Replace the current conversation with a fresh one.

        Returns:
            The new conversation, seeded with the configured system prompt
        """
        self.conversation = Conversation.with_system_prompt(self.settings.system_prompt)
        logger.info("Started a new conversation")
        return self.conversation

    async def aclose(self) -> None:
        """Close every provider and the inference client."""
        for provider in reversed(self.providers):
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider {provider.name}: {e}")
        await self.ollama_client.close()


async def build_context(
    settings: ToolRelaySettings,
    *,
    providers: Sequence[Provider] | None = None,
    engine: InferenceEngine | None = None,
    confirm: ConfirmCallback | None = None,
) -> AgentContext:
    """Connect the configured providers and assemble an AgentContext.

    Args:
        settings: Application settings
        providers: Providers to use instead of the ones built from settings
        engine: Engine to use instead of an OllamaEngine
        confirm: Optional callback asked before command tools run

    Returns:
        A ready AgentContext

    Raises:
        NoProvidersConnectedError: If no provider could be connected
    """
    policy = SafetyPolicy()
    ollama_client = OllamaClient(host=settings.ollama_host)
    if engine is None:
        engine = OllamaEngine(
            ollama_client,
            model=settings.model,
            chat_format=settings.chat_format,
            temperature=settings.temperature,
        )

    if providers is None:
        providers = build_providers(settings, policy)

    registry = ToolRegistry()
    connected = await discover_providers(providers, registry)
    logger.info(f"Registered {len(registry)} tools from {len(connected)} providers")

    orchestrator = Orchestrator(
        engine,
        registry,
        policy,
        max_rounds=settings.max_rounds,
        max_tokens=settings.max_tokens,
        tool_timeout=settings.tool_timeout,
        confirm=confirm,
    )

    return AgentContext(
        settings=settings,
        ollama_client=ollama_client,
        engine=engine,
        policy=policy,
        registry=registry,
        providers=connected,
        orchestrator=orchestrator,
        conversation=Conversation.with_system_prompt(settings.system_prompt),
    )
