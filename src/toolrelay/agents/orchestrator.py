"""Tool-calling orchestrator: the conversation control loop.

Each round renders a prompt from the conversation and the registry, buffers
one complete generated turn, parses it, and either finishes (no tool calls)
or dispatches every requested call in emission order and loops. Dispatch
errors are folded back into the conversation as tool messages so the model
can recover; only generation failures are raised to the caller.

The orchestrator performs no console or network I/O of its own. Front ends
consume run_iter() to observe messages as they are appended.
"""

import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, AsyncIterator

from toolrelay.conversation import (
    AssistantMessage,
    Conversation,
    Message,
    ToolCallRequest,
    ToolMessage,
)
from toolrelay.engine import InferenceEngine, parse_turn
from toolrelay.exceptions import GenerationError, ToolRelayError
from toolrelay.tools.registry import ToolRegistry
from toolrelay.tools.safety import SafetyPolicy
from toolrelay.tools.types import ToolErrorKind, ToolResult

logger = logging.getLogger(__name__)

COMMAND_ARGUMENT = "command"

ConfirmCallback = Callable[[ToolCallRequest], Awaitable[bool]]


class OrchestratorState(str, Enum):
    """States of the control loop."""

    AWAITING_MODEL_TURN = "awaiting_model_turn"
    PARSING_TURN = "parsing_turn"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


class StopReason(str, Enum):
    """Why a run reached the Done state."""

    FINAL_ANSWER = "final_answer"
    ROUND_BUDGET_EXHAUSTED = "round_budget_exhausted"


@dataclass(frozen=True)
class PendingToolCall:
    """A parsed call travelling through dispatch, with its eventual result."""

    request: ToolCallRequest
    result: ToolResult | None = None


@dataclass(frozen=True)
class ConversationResult:
    """Outcome of one orchestrator run.

    Attributes:
        stop_reason: Why the run ended
        rounds: Number of tool-dispatch rounds performed
        messages: Messages appended during this run, in order
        final_message: The closing assistant message, None if the round
                       budget ran out first
    """

    stop_reason: StopReason
    rounds: int
    messages: tuple[Message, ...]
    final_message: AssistantMessage | None = None

    @property
    def tool_calls(self) -> list[PendingToolCall]:
        """Calls dispatched during the run, paired with their results."""
        results = {
            message.tool_call_id: message
            for message in self.messages
            if isinstance(message, ToolMessage)
        }
        pending = []
        for message in self.messages:
            if not isinstance(message, AssistantMessage):
                continue
            for call in message.tool_calls:
                tool_message = results.get(call.call_id)
                result = None
                if tool_message is not None:
                    kind = ToolErrorKind(tool_message.error) if tool_message.error else None
                    result = ToolResult(content=tool_message.content, error=kind)
                pending.append(PendingToolCall(request=call, result=result))
        return pending


@dataclass(frozen=True)
class MessageAppended:
    """Event: a message was appended to the conversation."""

    message: Message


@dataclass(frozen=True)
class RunFinished:
    """Event: the run reached the Done state."""

    result: ConversationResult


OrchestratorEvent = MessageAppended | RunFinished


class Orchestrator:
    """Drives generation and tool dispatch for one conversation at a time.

    Attributes:
        engine: Inference engine used to render prompts and generate turns
        registry: Tool registry used to resolve tool names
        policy: Safety Policy applied to command-executing tools
        max_rounds: Maximum number of tool-dispatch rounds per run
        max_tokens: Token budget for each generated turn
        tool_timeout: Seconds allowed for each tool call
        confirm: Optional async callback asked before a command tool runs
        state: Current control-loop state
    """

    def __init__(
        self,
        engine: InferenceEngine,
        registry: ToolRegistry,
        policy: SafetyPolicy | None = None,
        *,
        max_rounds: int = 5,
        max_tokens: int = 256,
        tool_timeout: float = 10.0,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Raises:
            ValueError: If max_rounds is less than 1
        """
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")

        self.engine = engine
        self.registry = registry
        self.policy = policy or SafetyPolicy()
        self.max_rounds = max_rounds
        self.max_tokens = max_tokens
        self.tool_timeout = tool_timeout
        self.confirm = confirm
        self.state = OrchestratorState.DONE

    async def run(self, conversation: Conversation) -> ConversationResult:
        """Run the conversation until a final answer or the round budget.

        Args:
            conversation: Conversation ending with the message to respond to

        Returns:
            ConversationResult describing the run

        Raises:
            GenerationError: If the inference engine fails
            ValueError: If the conversation is empty
            ToolRelayError: If the run stops without finishing
        """
        result: ConversationResult | None = None
        async for event in self.run_iter(conversation):
            if isinstance(event, RunFinished):
                result = event.result
        if result is None:
            raise ToolRelayError("Run ended without a result")
        return result

    async def run_iter(self, conversation: Conversation) -> AsyncIterator[OrchestratorEvent]:
        """Run the conversation, yielding an event for every appended message.

        The final event is always RunFinished unless a GenerationError is
        raised.

        Args:
            conversation: Conversation ending with the message to respond to

        Yields:
            MessageAppended events followed by one RunFinished event
        """
        if not len(conversation):
            raise ValueError("Conversation has no messages to respond to")

        appended: list[Message] = []

        def append(message: Message) -> MessageAppended:
            conversation.append(message)
            appended.append(message)
            return MessageAppended(message)

        rounds = 0
        while True:
            self.state = OrchestratorState.AWAITING_MODEL_TURN
            prompt = self.engine.render_prompt(
                conversation.render(), self.registry.effective_tools()
            )
            logger.debug(
                f"Round {rounds + 1}: prompt of {len(prompt.text)} characters "
                f"({prompt.chat_format.value})"
            )
            text = await self._generate(prompt.text)

            self.state = OrchestratorState.PARSING_TURN
            turn = parse_turn(text, prompt.chat_format, id_seed=len(conversation))

            if not turn.has_tool_calls:
                final_message = AssistantMessage(content=turn.content)
                yield append(final_message)
                self.state = OrchestratorState.DONE
                logger.info(f"Conversation finished after {rounds} tool rounds")
                yield RunFinished(
                    ConversationResult(
                        stop_reason=StopReason.FINAL_ANSWER,
                        rounds=rounds,
                        messages=tuple(appended),
                        final_message=final_message,
                    )
                )
                return

            self.state = OrchestratorState.DISPATCHING_TOOLS
            calls = self._with_unique_ids(turn.tool_calls, conversation)
            try:
                yield append(AssistantMessage(content=turn.content, tool_calls=calls))

                # Sequential, in emission order
                for call in calls:
                    result = await self.dispatch(call)
                    yield append(
                        ToolMessage(
                            content=result.to_message_text(),
                            tool_call_id=call.call_id,
                            tool_name=call.name,
                            error=result.error.value if result.error else None,
                        )
                    )
            finally:
                # A consumer that stops early still leaves every call answered
                answered = conversation.answered_call_ids()
                for call in calls:
                    if call.call_id not in answered:
                        self.state = OrchestratorState.DONE
                        conversation.append(_abandoned_call_message(call))
                        logger.warning(f"Run stopped before {call.name} call {call.call_id}")

            rounds += 1
            if rounds >= self.max_rounds:
                self.state = OrchestratorState.DONE
                logger.warning(f"Round budget of {self.max_rounds} exhausted")
                yield RunFinished(
                    ConversationResult(
                        stop_reason=StopReason.ROUND_BUDGET_EXHAUSTED,
                        rounds=rounds,
                        messages=tuple(appended),
                    )
                )
                return

    async def _generate(self, prompt: str) -> str:
        """Buffer one complete turn from the engine."""
        fragments: list[str] = []
        try:
            async for fragment in self.engine.generate(prompt, self.max_tokens):
                fragments.append(fragment)
        except GenerationError:
            self.state = OrchestratorState.DONE
            raise
        except Exception as e:
            self.state = OrchestratorState.DONE
            raise GenerationError(str(e)) from e

        text = "".join(fragments)
        logger.debug(f"Generated turn: {text!r}")
        return text

    @staticmethod
    def _with_unique_ids(
        calls: Sequence[ToolCallRequest], conversation: Conversation
    ) -> tuple[ToolCallRequest, ...]:
        """Replace call ids that already appear in the log or earlier in the turn."""
        seen = conversation.tool_call_ids()
        unique = []
        for call in calls:
            if call.call_id in seen:
                call = replace(call, call_id=f"call_{uuid.uuid4().hex[:12]}")
            seen.add(call.call_id)
            unique.append(call)
        return tuple(unique)

    async def dispatch(
        self, call: ToolCallRequest, *, require_confirmation: bool = True
    ) -> ToolResult:
        """Resolve, check and execute one tool call.

        Never raises for tool-level problems: unknown tools, malformed
        arguments, policy rejections and provider failures all come back as
        a failed ToolResult.

        Args:
            call: The requested call
            require_confirmation: Ask the confirm callback (if any) before
                running a command tool

        Returns:
            ToolResult with the output or a structured error
        """
        route = self.registry.resolve(call.name)
        if route is None:
            logger.warning(f"Model requested unknown tool {call.name}")
            return ToolResult.failure(ToolErrorKind.UNKNOWN_TOOL, f"Tool '{call.name}' not found")

        arguments = _decode_arguments(call)
        if isinstance(arguments, ToolResult):
            return arguments

        if route.descriptor.executes_commands:
            rejection = self._check_command(call, arguments)
            if rejection is not None:
                return rejection
            if require_confirmation and self.confirm is not None:
                if not await self.confirm(call):
                    logger.info(f"Operator declined {call.name} call {call.call_id}")
                    return ToolResult.failure(
                        ToolErrorKind.POLICY_REJECTED,
                        "Command execution cancelled by operator",
                    )

        logger.info(f"Dispatching {call.name} to {route.provider.name}")
        logger.debug(f"Arguments for {call.call_id}: {arguments}")
        try:
            result = await route.provider.call_tool(call.name, arguments, self.tool_timeout)
        except Exception as e:
            logger.warning(f"Dispatch of {call.name} to {route.provider.name} failed: {e}")
            return ToolResult.failure(
                ToolErrorKind.DISPATCH_FAILURE, f"{type(e).__name__}: {e}"
            )

        if not result.ok:
            logger.info(f"Tool {call.name} failed ({result.error.value}): {result.content}")
        return result

    async def invoke(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Dispatch a tool call supplied directly by the operator.

        Goes through the same resolution and policy checks as model calls,
        without the confirmation prompt.

        Args:
            name: Tool name
            arguments: Literal argument payload

        Returns:
            ToolResult with the output or a structured error
        """
        call = ToolCallRequest(
            call_id=f"call_{uuid.uuid4().hex[:12]}",
            name=name,
            arguments=json.dumps(arguments, ensure_ascii=False),
        )
        return await self.dispatch(call, require_confirmation=False)

    def _check_command(
        self, call: ToolCallRequest, arguments: dict[str, Any]
    ) -> ToolResult | None:
        """Apply the Safety Policy to a command tool's arguments."""
        command = arguments.get(COMMAND_ARGUMENT)
        if not isinstance(command, str):
            return ToolResult.failure(
                ToolErrorKind.MISSING_PARAMETER, f"Missing '{COMMAND_ARGUMENT}' parameter"
            )

        reason = self.policy.check(command)
        if reason is not None:
            logger.warning(f"Policy rejected {call.name} command {command!r}: {reason}")
            return ToolResult.failure(
                ToolErrorKind.POLICY_REJECTED,
                f"Command not allowed for security reasons: {reason}",
            )
        return None


def _decode_arguments(call: ToolCallRequest) -> dict[str, Any] | ToolResult:
    """Decode a call's serialized arguments into an object."""
    try:
        arguments = json.loads(call.arguments) if call.arguments.strip() else {}
    except ValueError as e:
        return ToolResult.failure(
            ToolErrorKind.INVALID_PARAMETER, f"Malformed arguments for {call.name}: {e}"
        )

    if not isinstance(arguments, dict):
        return ToolResult.failure(
            ToolErrorKind.INVALID_PARAMETER,
            f"Arguments for {call.name} must be a JSON object",
        )
    return arguments


def _abandoned_call_message(call: ToolCallRequest) -> ToolMessage:
    """Tool message closing a call the run stopped before answering."""
    result = ToolResult.failure(
        ToolErrorKind.DISPATCH_FAILURE, "Run stopped before the call completed"
    )
    return ToolMessage(
        content=result.to_message_text(),
        tool_call_id=call.call_id,
        tool_name=call.name,
        error=result.error.value,
    )
