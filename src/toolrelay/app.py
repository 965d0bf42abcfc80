"""HTTP surface for toolrelay.

create_app() wires the chat, tools and health routers onto a FastAPI
instance. The agent context (providers, registry, engine and conversation)
lives for the whole process and is built in the lifespan hook.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolrelay.agents import build_context
from toolrelay.config import ToolRelaySettings
from toolrelay.routers import chat, health, tools

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the agent context on startup and tear it down on shutdown.

    Startup fails when no tool provider connects. An unreachable backend or
    missing model is only logged, since either may appear later.
    """
    settings: ToolRelaySettings = app.state.settings
    context = await build_context(settings)
    app.state.context = context
    logger.info(f"Agent context ready with {len(context.registry)} tools")

    client = context.ollama_client
    if not await client.check_connection():
        logger.warning(f"Ollama at {client.host} is not answering; chat requests will fail")
    elif not await client.check_model(settings.model):
        logger.warning(f"Model {settings.model} is not available; pull it before chatting")

    yield

    await context.aclose()
    app.state.context = None
    logger.info("Agent context closed")


def create_app(settings: ToolRelaySettings | None = None) -> FastAPI:
    """Assemble the toolrelay API.

    Args:
        settings: Settings to use; read from the environment when omitted.

    Returns:
        FastAPI: The application, not yet started.
    """
    if settings is None:
        from toolrelay.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="toolrelay",
        description="Tool-calling orchestrator for local LLMs and MCP tool servers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module in (health, tools, chat):
        app.include_router(module.router)

    return app
