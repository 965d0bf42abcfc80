"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from toolrelay.agents import AgentContext
from toolrelay.models.health import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Report the service version, backend reachability and tool providers.

    The service itself is healthy whenever it answers; a missing backend or
    model is reported in the body, not as an error status.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    context: AgentContext | None = getattr(request.app.state, "context", None)
    if context is None:
        return HealthResponse(status="ok", version=request.app.version)

    client = context.ollama_client
    model = context.settings.model
    try:
        ollama_connected = await client.check_connection()
        model_available = await client.check_model(model) if ollama_connected else False
    except Exception as e:
        logger.warning(f"Backend check failed: {e}")
        ollama_connected = False
        model_available = False

    return HealthResponse(
        status="ok",
        version=request.app.version,
        ollama_connected=ollama_connected,
        ollama_host=client.host,
        model=model,
        model_available=model_available,
        providers=[provider.name for provider in context.registry.providers()],
    )
