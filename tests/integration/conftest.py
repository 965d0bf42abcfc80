"""Pytest configuration for integration tests.

This module provides integration-test-specific fixtures that ensure
proper test isolation and mocking for API endpoint tests.
"""

from unittest.mock import patch

import pytest

from toolrelay.agents import build_context


@pytest.fixture(autouse=True)
def mock_ollama(mock_ollama_client):
    """Mock OllamaClient for all integration tests."""
    return mock_ollama_client


@pytest.fixture
def chat_engine(scripted_engine):
    """Scripted engine used by the app under test.

    Tests set chat_engine.turns before sending a message.
    """
    return scripted_engine(["Hello from the model."])


@pytest.fixture(autouse=True)
def use_chat_engine(chat_engine):
    """Build the app's agent context with the scripted engine.

    This fixture patches build_context before the app starts, ensuring the
    lifespan never creates an engine that talks to Ollama.
    """

    async def build_with_engine(settings, **kwargs):
        return await build_context(settings, engine=chat_engine, **kwargs)

    with patch("toolrelay.app.build_context", new=build_with_engine):
        yield
