"""Configuration module for toolrelay using pydantic-settings."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolrelay.engine.templates import ChatFormat

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that can perform calculations and execute "
    "basic shell commands. When the user asks for something that requires a "
    "command, generate and execute the appropriate shell command. Be careful "
    "and only execute safe commands."
)


class RemoteServerConfig(BaseModel):
    """Connection settings for one remote tool server.

    Attributes:
        name: Unique provider name used in listings and logs
        host: Hostname of the tool server
        port: Port of the tool server
        type: Free-form server type label (e.g. "vscode", "llama", "custom")
        enabled: Whether to connect to this server at startup
    """

    name: str
    host: str = "localhost"
    port: int
    type: str = "custom"
    enabled: bool = True


class ToolRelaySettings(BaseSettings):
    """Main configuration settings for toolrelay.

    All settings can be overridden via environment variables with the TOOLRELAY_ prefix.
    For example, TOOLRELAY_OLLAMA_HOST will override the ollama_host setting.
    List settings such as servers are read from JSON, e.g.
    TOOLRELAY_SERVERS='[{"name": "vscode", "host": "localhost", "port": 8080}]'.
    """

    # HTTP API
    host: str = "127.0.0.1"
    port: int = 8000

    # Inference engine
    ollama_host: str = "http://localhost:11434"
    model: str = "qwen2.5:7b"
    chat_format: ChatFormat = ChatFormat.HERMES
    max_tokens: int = 256
    temperature: float = 0.0

    # Conversation
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_rounds: int = Field(default=5, ge=1)

    # Tool providers
    servers: list[RemoteServerConfig] = Field(default_factory=list)
    sse_path: str = "/sse"
    local_tools_enabled: bool = True
    command_tools: list[str] = Field(default_factory=lambda: ["shell_command"])
    tool_timeout: float = 10.0
    connect_timeout: float = 30.0
    confirm_commands: bool = False
    client_name: str = "toolrelay"
    client_version: str = "0.1.0"

    # Tools server (serve-tools)
    tools_server_host: str = "localhost"
    tools_server_port: int = 8889

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="TOOLRELAY_")

    @property
    def enabled_servers(self) -> list[RemoteServerConfig]:
        """Get the remote servers that should be connected at startup."""
        return [server for server in self.servers if server.enabled]
