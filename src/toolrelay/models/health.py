"""Health check response model."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of toolrelay.
        ollama_connected: Whether the inference backend answered.
        ollama_host: The Ollama host URL.
        model: The configured model.
        model_available: Whether the backend has the configured model.
        providers: Names of the connected tool providers.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of toolrelay")
    ollama_connected: bool | None = Field(
        default=None,
        description="Whether Ollama is connected",
    )
    ollama_host: str | None = Field(
        default=None,
        description="Ollama host URL",
    )
    model: str | None = Field(default=None, description="Configured model")
    model_available: bool | None = Field(
        default=None,
        description="Whether the configured model is available",
    )
    providers: list[str] = Field(
        default_factory=list,
        description="Connected tool providers",
    )
