"""toolrelay: tool-calling orchestrator for local LLMs.

This package connects a locally served model to in-process tools and remote
MCP tool servers, runs the generate/parse/dispatch loop, and exposes it
through a CLI and a REST + SSE API.
"""

from toolrelay.app import create_app

__version__ = "0.1.0"

__all__ = ["create_app", "__version__"]
