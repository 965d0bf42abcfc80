"""CLI entry point for toolrelay.

This module provides the command-line interface. It can be invoked as
`toolrelay` (via the script entry point) or `python -m toolrelay`.
"""

import argparse
import asyncio
import logging
import sys
from typing import Any

import uvicorn

from toolrelay import __version__, create_app
from toolrelay.config import RemoteServerConfig, ToolRelaySettings
from toolrelay.console import run_console
from toolrelay.engine import ChatFormat
from toolrelay.tools.local import LocalProvider, builtin_tools
from toolrelay.tools.safety import SafetyPolicy
from toolrelay.tools.server import create_tools_server

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _common_parser() -> argparse.ArgumentParser:
    """Options shared by every subcommand."""
    parser = argparse.ArgumentParser(add_help=False)

    parser.add_argument(
        "--add-server",
        nargs=4,
        action="append",
        metavar=("NAME", "HOST", "PORT", "TYPE"),
        default=None,
        help="Connect to a remote tool server (repeatable, replaces TOOLRELAY_SERVERS)",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Ollama model name (can be set via TOOLRELAY_MODEL)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via TOOLRELAY_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--chat-format",
        type=str,
        default=None,
        choices=[fmt.value for fmt in ChatFormat],
        help="Prompt template and tool-call syntax of the model (default: hermes)",
    )

    parser.add_argument(
        "-n",
        "--max-tokens",
        type=int,
        default=None,
        help="Token budget for each generated turn (default: 256)",
    )

    parser.add_argument(
        "--max-rounds",
        type=int,
        default=None,
        help="Maximum tool-dispatch rounds per message (default: 5)",
    )

    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Ask before running command-executing tools",
    )

    parser.add_argument(
        "--no-local-tools",
        action="store_true",
        help="Do not register the built-in calculator and shell_command tools",
    )

    parser.add_argument(
        "--hide-instructions",
        action="store_true",
        help="Do not print usage instructions in interactive modes",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=LOG_LEVELS,
        help="Logging level (default: INFO, can be set via TOOLRELAY_LOG_LEVEL)",
    )

    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the toolrelay argument parser."""
    common = _common_parser()

    parser = argparse.ArgumentParser(
        prog="toolrelay",
        description="Tool-calling orchestrator for local LLMs and MCP tool servers",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"toolrelay {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("chat", parents=[common], help="Interactive agent chat")

    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Run a single prompt to completion"
    )
    run_parser.add_argument("-p", "--prompt", required=True, help="The user prompt")

    subparsers.add_parser(
        "client", parents=[common], help="Interactive tool client (no model)"
    )

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Run the HTTP API")
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via TOOLRELAY_HOST)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via TOOLRELAY_PORT)",
    )

    tools_parser = subparsers.add_parser(
        "serve-tools", parents=[common], help="Expose the built-in tools as an MCP server"
    )
    tools_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the tools server to (default: localhost)",
    )
    tools_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the tools server to (default: 8889)",
    )

    return parser


def settings_from_args(
    args: argparse.Namespace, parser: argparse.ArgumentParser
) -> ToolRelaySettings:
    """Build settings, CLI args override environment variables."""
    settings_kwargs: dict[str, Any] = {}

    if args.add_server:
        servers = []
        for name, host, port, server_type in args.add_server:
            try:
                port_number = int(port)
            except ValueError:
                parser.error(f"--add-server: invalid port {port!r} for {name}")
            servers.append(
                RemoteServerConfig(name=name, host=host, port=port_number, type=server_type)
            )
        settings_kwargs["servers"] = servers

    if args.model is not None:
        settings_kwargs["model"] = args.model
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.chat_format is not None:
        settings_kwargs["chat_format"] = args.chat_format
    if args.max_tokens is not None:
        settings_kwargs["max_tokens"] = args.max_tokens
    if args.max_rounds is not None:
        if args.max_rounds < 1:
            parser.error("--max-rounds must be at least 1")
        settings_kwargs["max_rounds"] = args.max_rounds
    if args.confirm:
        settings_kwargs["confirm_commands"] = True
    if args.no_local_tools:
        settings_kwargs["local_tools_enabled"] = False
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    if args.command == "serve":
        if args.host is not None:
            settings_kwargs["host"] = args.host
        if args.port is not None:
            settings_kwargs["port"] = args.port
    elif args.command == "serve-tools":
        if args.host is not None:
            settings_kwargs["tools_server_host"] = args.host
        if args.port is not None:
            settings_kwargs["tools_server_port"] = args.port

    return ToolRelaySettings(**settings_kwargs)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the toolrelay CLI.

    Parses command-line arguments and runs the selected subcommand.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = settings_from_args(args, parser)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        app = create_app(settings=settings)
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
        return 0

    if args.command == "serve-tools":
        provider = LocalProvider(
            builtin_tools(SafetyPolicy(), command_tools=settings.command_tools)
        )
        server = create_tools_server(
            provider,
            host=settings.tools_server_host,
            port=settings.tools_server_port,
        )
        server.run(transport="sse")
        return 0

    return asyncio.run(
        run_console(
            settings,
            args.command,
            prompt=getattr(args, "prompt", None),
            show_instructions=not args.hide_instructions,
        )
    )


if __name__ == "__main__":
    sys.exit(main())
