"""Interactive console front ends.

Three modes share one console: an interactive agent chat, a single prompt
run to completion, and a tool client REPL that invokes tools directly
without a model.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import TextIO

from toolrelay.agents import (
    AgentContext,
    ConversationResult,
    MessageAppended,
    RunFinished,
    StopReason,
    build_context,
)
from toolrelay.config import ToolRelaySettings
from toolrelay.conversation import (
    AssistantMessage,
    Message,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)
from toolrelay.exceptions import GenerationError, NoProvidersConnectedError

logger = logging.getLogger(__name__)

CLIENT_INSTRUCTIONS = (
    "\nInstructions:"
    "\n- Type 'tools' to list available tools"
    "\n- Type 'tool <name> <args_json>' to execute a tool"
    "\n- Type 'servers' to list connected servers"
    "\n- Type 'quit' to exit"
)

CHAT_INSTRUCTIONS = (
    "\nInstructions:"
    "\n- Type a message to chat with the agent"
    "\n- Type 'tools' to list available tools"
    "\n- Type 'tool <name> <args_json>' to execute a tool"
    "\n- Type 'servers' to list connected servers"
    "\n- Type 'new' to start a new conversation"
    "\n- Type 'quit' to exit"
)

EXIT_COMMANDS = ("quit", "exit")


class AgentConsole:
    """Line-oriented console over an AgentContext.

    Attributes:
        context: The agent context
        show_instructions: Whether to print usage instructions on start
    """

    def __init__(
        self,
        context: AgentContext,
        *,
        show_instructions: bool = True,
        input_func: Callable[[str], str] = input,
        output: TextIO | None = None,
    ) -> None:
        self.context = context
        self.show_instructions = show_instructions
        self._input = input_func
        self._output = output or sys.stdout

    def write(self, text: str = "") -> None:
        print(text, file=self._output, flush=True)

    async def read_line(self, prompt: str = "\n> ") -> str | None:
        """Read one line of input without blocking the event loop.

        Returns:
            The line, or None at end of input
        """
        try:
            return await asyncio.to_thread(self._input, prompt)
        except EOFError:
            return None

    async def confirm_command(self, call: ToolCallRequest) -> bool:
        """Ask the operator whether a command tool call may run."""
        self.write(f"  Function: {call.name}")
        self.write(f"  Arguments: {call.arguments}")
        answer = await self.read_line("  Execute this command? (y/N): ")
        if answer is not None and answer.strip().lower() in ("y", "yes"):
            return True
        self.write("  Command execution cancelled.")
        return False

    def display_tools(self) -> None:
        """Print every tool grouped by provider."""
        tools = self.context.registry.list_tools()
        self.write("\nAvailable Tools:")
        for provider in self.context.registry.providers():
            self.write(f"\n{provider.name} ({provider.server_type}):")
            for tool in tools:
                if tool.provider != provider.name:
                    continue
                suffix = " (shadowed)" if tool.shadowed else ""
                self.write(f"  - {tool.descriptor.name}: {tool.descriptor.description}{suffix}")
        self.write()

    def display_servers(self) -> None:
        self.write("\nConnected Servers:")
        for provider in self.context.registry.providers():
            self.write(f"- {provider.name} ({provider.server_type})")

    def display_message(self, message: Message) -> None:
        """Print a message appended during a run."""
        if isinstance(message, AssistantMessage):
            if message.tool_calls:
                if message.content:
                    self.write(message.content)
                self.write("Function calls detected:")
                for call in message.tool_calls:
                    self.write(f"  Function: {call.name}")
                    self.write(f"  Arguments: {call.arguments}")
            else:
                self.write(f"Response: {message.content}")
        elif isinstance(message, ToolMessage):
            label = "Error" if message.error else "Result"
            self.write(f"  {label} ({message.tool_name}):\n{message.content}")

    async def execute_tool_command(self, rest: str) -> None:
        """Run 'tool <name> <args_json>' against the registry."""
        name, _, args_text = rest.strip().partition(" ")
        if not name or not args_text.strip():
            self.write("Usage: tool <name> <args_json>")
            return

        try:
            arguments = json.loads(args_text)
        except ValueError as e:
            self.write(f"Error parsing args: {e}")
            return
        if not isinstance(arguments, dict):
            self.write("Error parsing args: arguments must be a JSON object")
            return

        route = self.context.registry.resolve(name)
        if route is None:
            self.write(f"Tool {name} not found")
            return

        result = await self.context.orchestrator.invoke(name, arguments)
        if result.ok:
            self.write(f"\nResult from {route.provider.name}:\n{result.content}")
        else:
            self.write(f"\n{result.to_message_text()}")

    async def handle_command(self, line: str) -> bool:
        """Handle a console command shared by the chat and client modes.

        Returns:
            True if the line was a command
        """
        if line == "tools":
            self.display_tools()
        elif line == "servers":
            self.display_servers()
        elif line == "help":
            self.write(CLIENT_INSTRUCTIONS)
        elif line == "tool" or line.startswith("tool "):
            await self.execute_tool_command(line[4:])
        else:
            return False
        return True

    async def run_client(self) -> None:
        """Tool client REPL: list and invoke tools directly."""
        self.write("\nTool Client Interactive Mode")
        if self.show_instructions:
            self.write(CLIENT_INSTRUCTIONS)

        while True:
            line = await self.read_line()
            if line is None:
                break
            line = line.strip()
            if line in EXIT_COMMANDS:
                break
            if not await self.handle_command(line):
                self.write("Unknown command. Type 'tools' for available tools.")

    async def send(self, text: str) -> ConversationResult | None:
        """Append a user message and run the conversation, printing progress.

        Returns:
            The run's result, or None if generation failed
        """
        self.context.conversation.append(UserMessage(content=text))
        result = None
        try:
            async for event in self.context.orchestrator.run_iter(self.context.conversation):
                if isinstance(event, MessageAppended):
                    self.display_message(event.message)
                elif isinstance(event, RunFinished):
                    result = event.result
        except GenerationError as e:
            logger.error(f"Generation failed: {e}")
            self.write(f"Error: {e}")
            return None

        if result.stop_reason is StopReason.ROUND_BUDGET_EXHAUSTED:
            self.write(f"Stopped after {result.rounds} tool rounds (round budget exhausted).")
        return result

    async def run_chat(self) -> None:
        """Interactive multi-turn agent chat."""
        self.write("\nAgent Chat Interactive Mode")
        if self.show_instructions:
            self.write(CHAT_INSTRUCTIONS)

        while True:
            line = await self.read_line()
            if line is None:
                break
            line = line.strip()
            if line in EXIT_COMMANDS:
                break
            if not line:
                continue
            if line == "new":
                self.context.new_conversation()
                self.write("Started a new conversation.")
                continue
            if await self.handle_command(line):
                continue
            await self.send(line)

    async def run_prompt(self, prompt: str) -> int:
        """Run a single prompt to completion.

        Returns:
            Process exit code
        """
        self.write(f"Prompt: {prompt}\n")
        result = await self.send(prompt)
        return 0 if result is not None else 1


async def run_console(
    settings: ToolRelaySettings,
    mode: str,
    *,
    prompt: str | None = None,
    show_instructions: bool = True,
    input_func: Callable[[str], str] = input,
    output: TextIO | None = None,
) -> int:
    """Build the agent context and run one console mode.

    Args:
        settings: Application settings
        mode: "chat", "run" or "client"
        prompt: Prompt for the "run" mode
        show_instructions: Whether to print usage instructions
        input_func: Line reader (defaults to input)
        output: Stream to print to (defaults to stdout)

    Returns:
        Process exit code
    """
    try:
        context = await build_context(settings)
    except NoProvidersConnectedError:
        print("No servers connected. Exiting.", file=output or sys.stderr)
        return 1

    console = AgentConsole(
        context,
        show_instructions=show_instructions,
        input_func=input_func,
        output=output,
    )
    if settings.confirm_commands:
        context.orchestrator.confirm = console.confirm_command

    try:
        if mode == "client":
            console.display_tools()
            await console.run_client()
            return 0
        if mode == "run":
            return await console.run_prompt(prompt or "")
        console.display_tools()
        await console.run_chat()
        return 0
    finally:
        await context.aclose()
