"""Ollama client wrapper and integration layer.

This package provides the async client wrapper used to stream completions
from the Ollama API.
"""

from toolrelay.ollama.client import OllamaClient

__all__ = ["OllamaClient"]
