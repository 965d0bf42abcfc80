"""Unit tests for the Orchestrator control loop and dispatch path."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from toolrelay.agents import (
    MessageAppended,
    Orchestrator,
    OrchestratorState,
    RunFinished,
    StopReason,
)
from toolrelay.conversation import (
    AssistantMessage,
    Conversation,
    SystemMessage,
    ToolCallRequest,
    ToolMessage,
    UserMessage,
)
from toolrelay.engine import ChatFormat
from toolrelay.exceptions import GenerationError, ToolRelayError
from toolrelay.tools import ToolDescriptor, ToolErrorKind, ToolRegistry, ToolResult

SHELL = ToolDescriptor(
    name="shell_command",
    description="Execute basic shell commands",
    parameters={"type": "object", "properties": {"command": {"type": "string"}}},
    executes_commands=True,
)
SEARCH = ToolDescriptor(name="search", description="Search things")


async def _registry(*providers) -> ToolRegistry:
    registry = ToolRegistry()
    for provider in providers:
        await provider.connect()
        registry.register(provider, await provider.list_tools())
    return registry


def _conversation(text: str = "list files") -> Conversation:
    return Conversation(
        [SystemMessage(content="You are a test assistant."), UserMessage(content=text)]
    )


@pytest.mark.asyncio
async def test_end_to_end_shell_listing(local_provider, scripted_engine, tool_call):
    """Test a tool round followed by a final answer."""
    engine = scripted_engine(
        [
            tool_call("shell_command", {"command": "ls"}),
            "There are two files: a.txt and b.txt.",
        ]
    )
    registry = await _registry(local_provider)
    orchestrator = Orchestrator(engine, registry)
    conversation = _conversation()

    with patch("toolrelay.tools.local.run_command", return_value="a.txt\nb.txt\n"):
        result = await orchestrator.run(conversation)

    messages = conversation.render()
    assert [m.role for m in messages] == ["system", "user", "assistant", "tool", "assistant"]
    assert len(messages) == 5

    call = messages[2].tool_calls[0]
    assert call.name == "shell_command"
    assert json.loads(call.arguments) == {"command": "ls"}
    assert messages[3].tool_call_id == call.call_id
    assert messages[3].content == "a.txt\nb.txt\n"
    assert messages[3].error is None
    assert messages[4].content == "There are two files: a.txt and b.txt."

    assert len(engine.prompts) == 2
    assert "a.txt\nb.txt" in engine.prompts[1]
    assert '"command": "ls"' in engine.prompts[1]

    assert result.stop_reason is StopReason.FINAL_ANSWER
    assert result.rounds == 1
    assert result.final_message is messages[4]
    assert result.messages == messages[2:]
    assert orchestrator.state is OrchestratorState.DONE


@pytest.mark.asyncio
async def test_round_budget_of_one(local_provider, scripted_engine, tool_call):
    """Test that budget 1 stops after one dispatch round without generating again."""
    engine = scripted_engine([tool_call("calculator", {"expression": "1 + 1"})])
    registry = await _registry(local_provider)
    orchestrator = Orchestrator(engine, registry, max_rounds=1)
    conversation = _conversation("add forever")

    result = await orchestrator.run(conversation)

    assert result.stop_reason is StopReason.ROUND_BUDGET_EXHAUSTED
    assert result.rounds == 1
    assert result.final_message is None
    assert len(engine.prompts) == 1
    last = conversation.render()[-1]
    assert isinstance(last, ToolMessage)
    assert last.content == "2.000000"
    assert [m.role for m in conversation] == ["system", "user", "assistant", "tool"]


@pytest.mark.asyncio
async def test_round_budget_counts_dispatch_rounds(local_provider, scripted_engine, tool_call):
    """Test that the loop performs exactly max_rounds dispatch rounds."""
    engine = scripted_engine([tool_call("calculator", {"expression": "2 * 2"})])
    registry = await _registry(local_provider)
    orchestrator = Orchestrator(engine, registry, max_rounds=3)
    conversation = _conversation()

    result = await orchestrator.run(conversation)

    assert result.rounds == 3
    assert len(engine.prompts) == 3
    assert sum(isinstance(m, ToolMessage) for m in conversation) == 3


@pytest.mark.asyncio
async def test_plain_answer_without_tools(local_provider, scripted_engine):
    """Test a turn with no tool calls finishing immediately."""
    engine = scripted_engine(["Hello! How can I help?"])
    orchestrator = Orchestrator(engine, await _registry(local_provider))
    conversation = _conversation("hi")

    result = await orchestrator.run(conversation)

    assert result.stop_reason is StopReason.FINAL_ANSWER
    assert result.rounds == 0
    assert result.final_message.content == "Hello! How can I help?"
    assert len(conversation) == 3


@pytest.mark.asyncio
async def test_tools_advertised_in_prompt(local_provider, scripted_engine):
    """Test that the registry's effective tools are rendered into the prompt."""
    engine = scripted_engine(["ok"])
    orchestrator = Orchestrator(engine, await _registry(local_provider))

    await orchestrator.run(_conversation())

    assert '"name": "calculator"' in engine.prompts[0]
    assert '"name": "shell_command"' in engine.prompts[0]


@pytest.mark.asyncio
async def test_multiple_calls_answered_in_order(local_provider, scripted_engine, tool_call):
    """Test that every call in a turn gets a tool message, in emission order."""
    engine = scripted_engine(
        [
            tool_call("calculator", {"expression": "1 + 1"})
            + tool_call("calculator", {"expression": "2 + 2"}),
            "2 and 4",
        ]
    )
    orchestrator = Orchestrator(engine, await _registry(local_provider))
    conversation = _conversation()

    await orchestrator.run(conversation)

    assistant = conversation.render()[2]
    tool_messages = [m for m in conversation if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == [c.call_id for c in assistant.tool_calls]
    assert [m.content for m in tool_messages] == ["2.000000", "4.000000"]


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_to_model(local_provider, scripted_engine, tool_call):
    """Test that an unknown tool becomes an error tool message and the loop continues."""
    engine = scripted_engine([tool_call("weather", {"city": "Oslo"}), "I cannot check weather."])
    orchestrator = Orchestrator(engine, await _registry(local_provider))
    conversation = _conversation()

    result = await orchestrator.run(conversation)

    tool_message = conversation.render()[3]
    assert tool_message.error == "unknown_tool"
    assert tool_message.content == "Error (unknown_tool): Tool 'weather' not found"
    assert result.stop_reason is StopReason.FINAL_ANSWER


@pytest.mark.asyncio
async def test_policy_rejection_skips_dispatch(fake_provider, scripted_engine, tool_call):
    """Test that an unsafe command never reaches the provider."""
    provider = fake_provider("remote", [SHELL])
    engine = scripted_engine([tool_call("shell_command", {"command": "rm -rf /"}), "Refused."])
    orchestrator = Orchestrator(engine, await _registry(provider))
    conversation = _conversation()

    await orchestrator.run(conversation)

    tool_message = conversation.render()[3]
    assert provider.calls == []
    assert tool_message.error == "policy_rejected"
    assert "Command not allowed for security reasons" in tool_message.content


@pytest.mark.asyncio
async def test_policy_applies_to_remote_command_tools(fake_provider, scripted_engine, tool_call):
    """Test that a safe command on a remote provider is dispatched."""
    provider = fake_provider(
        "remote", [SHELL], responses={"shell_command": ToolResult.success("/home")}
    )
    engine = scripted_engine([tool_call("shell_command", {"command": "pwd"}), "done"])
    orchestrator = Orchestrator(engine, await _registry(provider))
    conversation = _conversation()

    await orchestrator.run(conversation)

    assert provider.calls == [("shell_command", {"command": "pwd"})]
    assert conversation.render()[3].content == "/home"


@pytest.mark.asyncio
async def test_missing_command_argument(fake_provider):
    """Test a command tool called without its command argument."""
    provider = fake_provider("remote", [SHELL])
    orchestrator = Orchestrator(AsyncMock(), await _registry(provider))

    result = await orchestrator.dispatch(
        ToolCallRequest(call_id="c1", name="shell_command", arguments='{"cmd": "ls"}')
    )

    assert result.error is ToolErrorKind.MISSING_PARAMETER
    assert provider.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("arguments", ["not json", "[1, 2]", '"ls"'])
async def test_malformed_arguments(fake_provider, arguments):
    """Test that undecodable or non-object arguments are invalid parameters."""
    provider = fake_provider("remote", [SEARCH])
    orchestrator = Orchestrator(AsyncMock(), await _registry(provider))

    result = await orchestrator.dispatch(
        ToolCallRequest(call_id="c1", name="search", arguments=arguments)
    )

    assert result.error is ToolErrorKind.INVALID_PARAMETER
    assert provider.calls == []


@pytest.mark.asyncio
async def test_empty_arguments_are_an_empty_object(fake_provider):
    """Test that blank arguments decode to an empty object."""
    provider = fake_provider("remote", [SEARCH])
    orchestrator = Orchestrator(AsyncMock(), await _registry(provider))

    result = await orchestrator.dispatch(ToolCallRequest(call_id="c1", name="search", arguments=""))

    assert result.ok
    assert provider.calls == [("search", {})]


@pytest.mark.asyncio
async def test_provider_exception_is_dispatch_failure(fake_provider, scripted_engine, tool_call):
    """Test that a provider raising is folded into a dispatch failure."""
    provider = fake_provider("remote", [SEARCH], call_error=RuntimeError("socket closed"))
    engine = scripted_engine([tool_call("search", {"q": "x"}), "Search is down."])
    orchestrator = Orchestrator(engine, await _registry(provider))
    conversation = _conversation()

    result = await orchestrator.run(conversation)

    tool_message = conversation.render()[3]
    assert tool_message.error == "dispatch_failure"
    assert "socket closed" in tool_message.content
    assert result.stop_reason is StopReason.FINAL_ANSWER


@pytest.mark.asyncio
async def test_shadowed_tool_routes_to_latest_provider(fake_provider, scripted_engine, tool_call):
    """Test that dispatch follows last-writer-wins ownership."""
    first = fake_provider("first", [SEARCH])
    second = fake_provider("second", [SEARCH])
    engine = scripted_engine([tool_call("search", {}), "done"])
    orchestrator = Orchestrator(engine, await _registry(first, second))

    await orchestrator.run(_conversation())

    assert first.calls == []
    assert second.calls == [("search", {})]


@pytest.mark.asyncio
async def test_confirm_declined(fake_provider, scripted_engine, tool_call):
    """Test that a declined confirmation is a policy rejection."""
    provider = fake_provider("remote", [SHELL])
    confirm = AsyncMock(return_value=False)
    engine = scripted_engine([tool_call("shell_command", {"command": "ls"}), "ok"])
    orchestrator = Orchestrator(engine, await _registry(provider), confirm=confirm)
    conversation = _conversation()

    await orchestrator.run(conversation)

    confirm.assert_awaited_once()
    assert provider.calls == []
    assert conversation.render()[3].error == "policy_rejected"


@pytest.mark.asyncio
async def test_confirm_accepted(fake_provider, scripted_engine, tool_call):
    """Test that an accepted confirmation lets the command run."""
    provider = fake_provider("remote", [SHELL])
    confirm = AsyncMock(return_value=True)
    engine = scripted_engine([tool_call("shell_command", {"command": "ls"}), "ok"])
    orchestrator = Orchestrator(engine, await _registry(provider), confirm=confirm)

    await orchestrator.run(_conversation())

    assert provider.calls == [("shell_command", {"command": "ls"})]


@pytest.mark.asyncio
async def test_confirm_not_asked_for_unsafe_command(fake_provider, scripted_engine, tool_call):
    """Test that the policy rejects before the operator is asked."""
    provider = fake_provider("remote", [SHELL])
    confirm = AsyncMock(return_value=True)
    engine = scripted_engine([tool_call("shell_command", {"command": "sudo ls"}), "ok"])
    orchestrator = Orchestrator(engine, await _registry(provider), confirm=confirm)

    await orchestrator.run(_conversation())

    confirm.assert_not_awaited()
    assert provider.calls == []


@pytest.mark.asyncio
async def test_generation_error_propagates(local_provider, scripted_engine):
    """Test that an engine failure is raised and nothing is appended."""
    engine = scripted_engine([], error=GenerationError("model crashed"))
    orchestrator = Orchestrator(engine, await _registry(local_provider))
    conversation = _conversation()

    with pytest.raises(GenerationError):
        await orchestrator.run(conversation)

    assert len(conversation) == 2
    assert orchestrator.state is OrchestratorState.DONE


@pytest.mark.asyncio
async def test_unexpected_engine_error_is_generation_error(local_provider, scripted_engine):
    """Test that other engine exceptions are wrapped."""
    engine = scripted_engine([], error=RuntimeError("out of memory"))
    orchestrator = Orchestrator(engine, await _registry(local_provider))

    with pytest.raises(GenerationError, match="out of memory"):
        await orchestrator.run(_conversation())


@pytest.mark.asyncio
async def test_duplicate_call_ids_are_replaced(fake_provider, scripted_engine):
    """Test that a call id already in the log is replaced with a fresh one."""
    provider = fake_provider("remote", [SEARCH])
    repeated = '[TOOL_CALLS] [{"name": "search", "arguments": {}, "id": "abc123XYZ"}]'
    engine = scripted_engine([repeated, repeated, "done"], chat_format=ChatFormat.MISTRAL)
    orchestrator = Orchestrator(engine, await _registry(provider))
    conversation = _conversation()

    await orchestrator.run(conversation)

    assistants = [m for m in conversation if isinstance(m, AssistantMessage) and m.tool_calls]
    ids = [m.tool_calls[0].call_id for m in assistants]
    assert ids[0] == "abc123XYZ"
    assert ids[1] != "abc123XYZ"
    tool_ids = [m.tool_call_id for m in conversation if isinstance(m, ToolMessage)]
    assert tool_ids == ids


@pytest.mark.asyncio
async def test_run_iter_events(local_provider, scripted_engine, tool_call):
    """Test that run_iter reports each appended message and then the result."""
    engine = scripted_engine([tool_call("calculator", {"expression": "3 - 1"}), "2"])
    orchestrator = Orchestrator(engine, await _registry(local_provider))
    conversation = _conversation()

    events = [event async for event in orchestrator.run_iter(conversation)]

    assert [type(e) for e in events] == [
        MessageAppended,
        MessageAppended,
        MessageAppended,
        RunFinished,
    ]
    assert [e.message for e in events[:3]] == list(conversation.render()[2:])
    assert events[-1].result.stop_reason is StopReason.FINAL_ANSWER


@pytest.mark.asyncio
async def test_result_pairs_calls_with_results(local_provider, scripted_engine, tool_call):
    """Test the tool_calls view of a result."""
    engine = scripted_engine([tool_call("calculator", {"expression": "1 / 0"}), "oops"])
    orchestrator = Orchestrator(engine, await _registry(local_provider))

    result = await orchestrator.run(_conversation())

    (pending,) = result.tool_calls
    assert pending.request.name == "calculator"
    assert pending.result.error is ToolErrorKind.INTERNAL_ERROR


@pytest.mark.asyncio
async def test_empty_conversation_rejected(local_provider, scripted_engine):
    """Test that running an empty conversation is an error."""
    orchestrator = Orchestrator(scripted_engine(["x"]), await _registry(local_provider))

    with pytest.raises(ValueError):
        await orchestrator.run(Conversation())


def test_invalid_round_budget():
    """Test that the round budget must be positive."""
    with pytest.raises(ValueError):
        Orchestrator(AsyncMock(), ToolRegistry(), max_rounds=0)


@pytest.mark.asyncio
async def test_invoke_skips_confirmation(fake_provider):
    """Test that operator invocations are not confirmed but are policy-checked."""
    provider = fake_provider("remote", [SHELL])
    confirm = AsyncMock(return_value=False)
    orchestrator = Orchestrator(AsyncMock(), await _registry(provider), confirm=confirm)

    allowed = await orchestrator.invoke("shell_command", {"command": "ls"})
    rejected = await orchestrator.invoke("shell_command", {"command": "rm x"})

    confirm.assert_not_awaited()
    assert allowed.ok
    assert rejected.error is ToolErrorKind.POLICY_REJECTED
    assert provider.calls == [("shell_command", {"command": "ls"})]


@pytest.mark.asyncio
async def test_stopped_run_answers_pending_calls(fake_provider, scripted_engine, tool_call):
    """Test that closing a run mid-round leaves no call without a result."""
    provider = fake_provider("remote", [SEARCH])
    engine = scripted_engine(
        [tool_call("search", {"q": "a"}) + "\n" + tool_call("search", {"q": "b"}), "done"]
    )
    orchestrator = Orchestrator(engine, await _registry(provider))
    conversation = _conversation()

    events = orchestrator.run_iter(conversation)
    first = await events.__anext__()
    await events.aclose()

    assert provider.calls == []
    assert orchestrator.state is OrchestratorState.DONE
    call_ids = [call.call_id for call in first.message.tool_calls]
    tool_messages = [m for m in conversation if isinstance(m, ToolMessage)]
    assert [m.tool_call_id for m in tool_messages] == call_ids
    assert all(m.error == "dispatch_failure" for m in tool_messages)
    assert conversation.answered_call_ids() == conversation.tool_call_ids()


@pytest.mark.asyncio
async def test_stopped_run_keeps_completed_results(fake_provider, scripted_engine, tool_call):
    """Test that only calls without a result are closed out."""
    provider = fake_provider("remote", [SEARCH])
    engine = scripted_engine(
        [tool_call("search", {"q": "a"}) + "\n" + tool_call("search", {"q": "b"}), "done"]
    )
    orchestrator = Orchestrator(engine, await _registry(provider))
    conversation = _conversation()

    events = orchestrator.run_iter(conversation)
    await events.__anext__()
    answered = await events.__anext__()
    await events.aclose()

    assert len(provider.calls) == 1
    first_result, closed = [m for m in conversation if isinstance(m, ToolMessage)]
    assert first_result is answered.message
    assert first_result.error is None
    assert closed.error == "dispatch_failure"


@pytest.mark.asyncio
async def test_run_without_finish_event(local_provider, scripted_engine):
    """Test that run() reports a run that never finished."""
    orchestrator = Orchestrator(scripted_engine(["x"]), await _registry(local_provider))

    async def unfinished(conversation):
        yield MessageAppended(AssistantMessage(content="partial"))

    with patch.object(orchestrator, "run_iter", unfinished):
        with pytest.raises(ToolRelayError):
            await orchestrator.run(_conversation())
