"""Local (in-process) tool provider and built-in tools.

Local tools are plain typed Python functions. Their argument schema and
validation are generated with pydantic from the function signature, so a
handler only ever sees well-formed arguments. Handlers signal failures by
raising ToolInvocationError; the provider turns that into a failed
ToolResult.
"""

import asyncio
import inspect
import logging
import re
import subprocess
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass
from typing import Annotated, Any, get_type_hints

from pydantic import BaseModel, Field, ValidationError, create_model

from toolrelay.tools.base import Provider
from toolrelay.tools.safety import SafetyPolicy
from toolrelay.tools.types import (
    ProviderKind,
    ToolDescriptor,
    ToolErrorKind,
    ToolInvocationError,
    ToolResult,
)

logger = logging.getLogger(__name__)

# Chat-template fragments models sometimes leak into string arguments
MODEL_MARKERS = (
    "<|im_start|>",
    "<|im_end|>",
    "<|assistant|>",
    "<|user|>",
    "assistant\n",
    "user\n",
)

COMMAND_TIMEOUT = 30.0

_NUMBER = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
_EXPRESSION = re.compile(rf"^\s*({_NUMBER})\s*([-+*/])\s*({_NUMBER})\s*$")


def clean_model_text(text: str) -> str:
    """Remove chat-template markers and surrounding whitespace.

    Args:
        text: Raw argument text produced by the model

    Returns:
        The cleaned text
    """
    for marker in MODEL_MARKERS:
        text = text.replace(marker, "")
    return text.strip()


def trim_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Drop pydantic's generated "title" keys from a JSON schema.

    Args:
        schema: JSON schema as produced by model_json_schema()

    Returns:
        The same schema without title entries
    """
    trimmed = {key: value for key, value in schema.items() if key != "title"}
    if "properties" in trimmed:
        trimmed["properties"] = {
            name: trim_schema(prop) for name, prop in trimmed["properties"].items()
        }
    return trimmed


def _validation_failure(exc: ValidationError) -> ToolInvocationError:
    """Map the first pydantic validation error to a structured tool error."""
    error = exc.errors()[0]
    field_name = ".".join(str(part) for part in error["loc"]) or "arguments"
    if error["type"] == "missing":
        return ToolInvocationError(
            ToolErrorKind.MISSING_PARAMETER, f"Missing '{field_name}' parameter"
        )
    return ToolInvocationError(
        ToolErrorKind.INVALID_PARAMETER,
        f"Invalid '{field_name}' parameter: {error['msg']}",
    )


@dataclass(frozen=True)
class LocalTool:
    """An in-process tool backed by a typed Python function.

    Attributes:
        name: Tool name
        description: Description shown to the model
        func: The handler function
        args_model: Pydantic model validating the handler's arguments
        executes_commands: Whether the Safety Policy gates this tool
    """

    name: str
    description: str
    func: Callable[..., str]
    args_model: type[BaseModel]
    executes_commands: bool = False

    @classmethod
    def from_function(
        cls,
        func: Callable[..., str],
        name: str | None = None,
        description: str | None = None,
        executes_commands: bool = False,
    ) -> "LocalTool":
        """Build a tool from a function signature.

        Parameter annotations (optionally Annotated with a pydantic Field for
        a description) become the argument schema; parameters without a
        default are required.

        Args:
            func: Handler function returning the result text
            name: Tool name (default: the function name)
            description: Tool description (default: the function docstring)
            executes_commands: Whether the Safety Policy gates this tool

        Returns:
            LocalTool wrapping the function
        """
        tool_name = name or func.__name__
        hints = get_type_hints(func, include_extras=True)

        fields: dict[str, Any] = {}
        for param_name, param in inspect.signature(func).parameters.items():
            annotation = hints.get(param_name, Any)
            default = ... if param.default is inspect.Parameter.empty else param.default
            fields[param_name] = (annotation, default)

        args_model = create_model(f"{tool_name}_arguments", **fields)

        return cls(
            name=tool_name,
            description=description or inspect.getdoc(func) or "",
            func=func,
            args_model=args_model,
            executes_commands=executes_commands,
        )

    @property
    def descriptor(self) -> ToolDescriptor:
        """The descriptor advertised for this tool."""
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            parameters=trim_schema(self.args_model.model_json_schema()),
            executes_commands=self.executes_commands,
        )

    def invoke(self, arguments: dict[str, Any]) -> str:
        """Validate arguments and run the handler.

        Args:
            arguments: Decoded argument payload

        Returns:
            The handler's result text

        Raises:
            ToolInvocationError: If validation fails or the handler fails
        """
        try:
            validated = self.args_model.model_validate(arguments)
        except ValidationError as e:
            raise _validation_failure(e) from e

        kwargs = {key: getattr(validated, key) for key in self.args_model.model_fields}
        return self.func(**kwargs)


class LocalProvider(Provider):
    """Provider backed by a set of in-process handlers."""

    kind = ProviderKind.LOCAL

    def __init__(
        self,
        tools: Iterable[LocalTool],
        name: str = "local",
        server_type: str = "local",
    ) -> None:
        """Initialize the provider.

        Args:
            tools: The handler set; a later tool replaces an earlier one with
                   the same name
            name: Provider name
            server_type: Type label shown in listings
        """
        super().__init__(name, server_type)
        self._tools: dict[str, LocalTool] = {tool.name: tool for tool in tools}
        self.descriptors = tuple(tool.descriptor for tool in self._tools.values())
        self._connected = False

    @property
    def tools(self) -> list[LocalTool]:
        """The handler set."""
        return list(self._tools.values())

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.info(f"Local provider {self.name} ready with {len(self._tools)} tools")

    async def list_tools(self) -> list[ToolDescriptor]:
        return list(self.descriptors)

    async def call_tool(
        self, name: str, arguments: dict[str, Any], timeout: float
    ) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.failure(
                ToolErrorKind.UNKNOWN_TOOL,
                f"Tool '{name}' is not provided by {self.name}",
            )

        try:
            # The worker thread is not interrupted on timeout
            output = await asyncio.wait_for(
                asyncio.to_thread(tool.invoke, arguments), timeout=timeout
            )
        except ToolInvocationError as e:
            logger.info(f"Local tool {name} failed ({e.kind.value}): {e.message}")
            return ToolResult.failure(e.kind, e.message)
        except asyncio.TimeoutError:
            logger.warning(f"Local tool {name} timed out after {timeout:g}s")
            return ToolResult.failure(
                ToolErrorKind.DISPATCH_FAILURE,
                f"Tool '{name}' timed out after {timeout:g}s",
            )
        except Exception as e:
            logger.exception(f"Local tool {name} raised an unexpected error")
            return ToolResult.failure(ToolErrorKind.INTERNAL_ERROR, str(e))

        return ToolResult.success(output)


def calculator(
    expression: Annotated[
        str, Field(description="The calculation to perform (e.g., '2 + 2')")
    ],
) -> str:
    """Perform basic calculations"""
    expr = clean_model_text(expression)
    if not expr:
        raise ToolInvocationError(ToolErrorKind.INVALID_PARAMETER, "Empty expression")

    match = _EXPRESSION.match(expr)
    if match is None:
        raise ToolInvocationError(
            ToolErrorKind.INTERNAL_ERROR, f"Invalid expression: {expr}"
        )

    a, op, b = float(match.group(1)), match.group(2), float(match.group(3))
    if op == "+":
        result = a + b
    elif op == "-":
        result = a - b
    elif op == "*":
        result = a * b
    else:
        if b == 0:
            raise ToolInvocationError(ToolErrorKind.INTERNAL_ERROR, "Division by zero")
        result = a / b

    return f"{result:f}"


def run_command(command: str, timeout: float = COMMAND_TIMEOUT) -> str:
    """Run a shell command and return its standard output.

    Args:
        command: Command text, already checked against the Safety Policy
        timeout: Seconds before the process is killed

    Returns:
        The command's stdout

    Raises:
        ToolInvocationError: If the process cannot be started, times out, or
            fails without producing output
    """
    try:
        completed = subprocess.run(
            command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolInvocationError(
            ToolErrorKind.INTERNAL_ERROR, f"Command timed out after {timeout:g}s"
        ) from e
    except OSError as e:
        raise ToolInvocationError(
            ToolErrorKind.INTERNAL_ERROR, f"Failed to execute command: {e}"
        ) from e

    if completed.returncode != 0 and not completed.stdout:
        stderr = completed.stderr.strip()
        raise ToolInvocationError(
            ToolErrorKind.INTERNAL_ERROR,
            stderr or f"Command exited with status {completed.returncode}",
        )

    return completed.stdout


def make_shell_command(policy: SafetyPolicy) -> Callable[..., str]:
    """Create the shell_command handler bound to a Safety Policy.

    The handler re-checks the policy itself because it can also be reached
    directly through the tools server.

    Args:
        policy: Policy deciding which commands may run

    Returns:
        The shell_command handler function
    """

    def shell_command(
        command: Annotated[str, Field(description="The shell command to execute")],
    ) -> str:
        """Execute basic shell commands"""
        cmd = clean_model_text(command)
        if not cmd:
            raise ToolInvocationError(ToolErrorKind.INVALID_PARAMETER, "Empty command")

        if not policy.is_safe(cmd):
            raise ToolInvocationError(
                ToolErrorKind.POLICY_REJECTED,
                "Command not allowed for security reasons",
            )

        return run_command(cmd)

    return shell_command


def builtin_tools(
    policy: SafetyPolicy,
    command_tools: Collection[str] = ("shell_command",),
) -> list[LocalTool]:
    """Create the built-in handler set.

    Args:
        policy: Policy used by the shell_command handler
        command_tools: Tool names to flag as command-executing

    Returns:
        List with the calculator and shell_command tools
    """
    functions = [calculator, make_shell_command(policy)]
    return [
        LocalTool.from_function(func, executes_commands=func.__name__ in command_tools)
        for func in functions
    ]
