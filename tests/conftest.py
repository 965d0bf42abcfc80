"""Pytest configuration and shared fixtures for toolrelay tests.

This module provides common fixtures used across all test modules,
including a scripted inference engine, fake tool providers, test app
creation and async client setup.
"""

import json
from typing import Any, AsyncIterator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from toolrelay import create_app
from toolrelay.config import ToolRelaySettings
from toolrelay.engine import ChatFormat, InferenceEngine, RenderedPrompt, render_prompt
from toolrelay.exceptions import ProviderConnectError
from toolrelay.tools import (
    LocalProvider,
    Provider,
    ProviderKind,
    SafetyPolicy,
    ToolDescriptor,
    ToolResult,
    builtin_tools,
)


class ScriptedEngine(InferenceEngine):
    """Inference engine that replays canned turns.

    Each generate() call consumes the next turn; the last turn is repeated
    once the script runs out. Every prompt it is asked to complete is
    recorded.
    """

    def __init__(
        self,
        turns: list[str],
        chat_format: ChatFormat = ChatFormat.HERMES,
        error: Exception | None = None,
    ) -> None:
        self.turns = list(turns)
        self.chat_format = chat_format
        self.error = error
        self.prompts: list[str] = []

    def render_prompt(self, messages, tools) -> RenderedPrompt:
        return render_prompt(messages, tools, self.chat_format)

    async def generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error

        text = self.turns.pop(0) if len(self.turns) > 1 else self.turns[0]
        middle = len(text) // 2
        for fragment in (text[:middle], text[middle:]):
            if fragment:
                yield fragment


class FakeProvider(Provider):
    """In-memory provider with canned results, recording every call."""

    kind = ProviderKind.REMOTE

    def __init__(
        self,
        name: str,
        tools: list[ToolDescriptor],
        *,
        server_type: str = "custom",
        responses: dict[str, ToolResult] | None = None,
        fail_connect: bool = False,
        call_error: Exception | None = None,
    ) -> None:
        super().__init__(name, server_type)
        self._tools = list(tools)
        self.responses = responses or {}
        self.fail_connect = fail_connect
        self.call_error = call_error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self.fail_connect:
            raise ProviderConnectError(self.name, "initialize handshake failed")
        self._connected = True

    async def list_tools(self) -> list[ToolDescriptor]:
        self.descriptors = tuple(self._tools)
        return list(self._tools)

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: float
    ) -> ToolResult:
        self.calls.append((name, arguments))
        if self.call_error is not None:
            raise self.call_error
        return self.responses.get(name, ToolResult.success(f"{self.name}:{name}"))

    async def close(self) -> None:
        self.closed = True
        self._connected = False


def hermes_call(name: str, arguments: dict[str, Any]) -> str:
    """Format a tool call the way a Hermes-style model emits it."""
    payload = json.dumps({"name": name, "arguments": arguments})
    return f"<tool_call>\n{payload}\n</tool_call>"


@pytest.fixture
def test_settings():
    """Create test settings with no remote servers.

    Returns:
        ToolRelaySettings: Settings instance configured for testing.
    """
    return ToolRelaySettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        model="test-model",
        system_prompt="You are a test assistant.",
        servers=[],
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def policy():
    """The default Safety Policy."""
    return SafetyPolicy()


@pytest.fixture
def local_provider(policy):
    """The built-in local handler set."""
    return LocalProvider(builtin_tools(policy))


@pytest.fixture
def mock_ollama_client():
    """Mock OllamaClient so the agent context never talks to a real server."""
    with patch("toolrelay.agents.context.OllamaClient") as mock_client_class:
        mock_instance = AsyncMock()
        mock_instance.host = "http://localhost:11434"
        mock_instance.check_connection.return_value = True
        mock_instance.check_model.return_value = True
        mock_client_class.return_value = mock_instance
        yield mock_instance


@pytest.fixture
def test_app(test_settings):
    """Create a FastAPI test application instance.

    Args:
        test_settings: Test settings fixture.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings)


@pytest_asyncio.fixture
async def async_client(test_app, mock_ollama_client):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.
        mock_ollama_client: Mocked Ollama client used by the lifespan.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def scripted_engine():
    """Factory for engines replaying canned turns."""
    return ScriptedEngine


@pytest.fixture
def fake_provider():
    """Factory for in-memory tool providers."""
    return FakeProvider


@pytest.fixture
def tool_call():
    """Formatter for Hermes-style tool-call text."""
    return hermes_call
