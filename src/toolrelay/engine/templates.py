"""Chat templates for rendering a conversation into a raw prompt.

The prompt is rendered here rather than by the inference server so that the
same format tag can be used to parse tool calls out of the generated text.
Rendering is a pure function of the messages, the tools and the format.

Supported formats:
- hermes: ChatML with <tool_call>{...}</tool_call> blocks (Qwen 2.5, Hermes)
- llama3_json: Llama 3.x with bare {"name", "parameters"} JSON tool calls
- mistral: Mistral instruct with [TOOL_CALLS][...] and 9-character call ids
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from toolrelay.conversation.types import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from toolrelay.tools.types import ToolDescriptor

DEFAULT_SYSTEM_TEXT = "You are a helpful assistant."


class ChatFormat(str, Enum):
    """Chat template / tool-call syntax families."""

    HERMES = "hermes"
    LLAMA3_JSON = "llama3_json"
    MISTRAL = "mistral"


# End-of-generation markers per format
STOP_MARKERS: dict[ChatFormat, tuple[str, ...]] = {
    ChatFormat.HERMES: ("<|im_end|>", "<|endoftext|>"),
    ChatFormat.LLAMA3_JSON: ("<|eot_id|>", "<|eom_id|>"),
    ChatFormat.MISTRAL: ("</s>",),
}


@dataclass(frozen=True)
class RenderedPrompt:
    """A prompt ready for generation.

    Attributes:
        text: Raw prompt text ending with the assistant generation prompt
        chat_format: Format the prompt was rendered with; the same format
                     must be used to parse the generated turn
    """

    text: str
    chat_format: ChatFormat


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _arguments_value(arguments: str) -> Any:
    """Decode stored argument text for re-embedding, keeping it as-is if not JSON."""
    try:
        return json.loads(arguments)
    except ValueError:
        return arguments


def _split_system(messages: Sequence[Message]) -> tuple[str, list[Message]]:
    """Separate a leading system message from the rest of the log."""
    if messages and isinstance(messages[0], SystemMessage):
        return messages[0].content, list(messages[1:])
    return DEFAULT_SYSTEM_TEXT, list(messages)


def _render_hermes(messages: Sequence[Message], tools: Sequence[ToolDescriptor]) -> str:
    system, rest = _split_system(messages)
    if tools:
        signatures = "\n".join(_dumps(tool.to_schema()) for tool in tools)
        system += (
            "\n\n# Tools\n\n"
            "You may call one or more functions to assist with the user query.\n\n"
            "You are provided with function signatures within <tools></tools> XML tags:\n"
            f"<tools>\n{signatures}\n</tools>\n\n"
            "For each function call, return a json object with function name and "
            "arguments within <tool_call></tool_call> XML tags:\n"
            "<tool_call>\n"
            '{"name": <function-name>, "arguments": <args-json-object>}\n'
            "</tool_call>"
        )

    parts = [f"<|im_start|>system\n{system}<|im_end|>\n"]
    responses: list[str] = []

    def flush_responses() -> None:
        if responses:
            parts.append("<|im_start|>user" + "".join(responses) + "<|im_end|>\n")
            responses.clear()

    for message in rest:
        if isinstance(message, ToolMessage):
            responses.append(f"\n<tool_response>\n{message.content}\n</tool_response>")
            continue
        flush_responses()

        if isinstance(message, AssistantMessage):
            body = message.content
            for call in message.tool_calls:
                payload = _dumps(
                    {"name": call.name, "arguments": _arguments_value(call.arguments)}
                )
                body += ("\n" if body else "") + f"<tool_call>\n{payload}\n</tool_call>"
            parts.append(f"<|im_start|>assistant\n{body}<|im_end|>\n")
        else:
            parts.append(f"<|im_start|>{message.role}\n{message.content}<|im_end|>\n")

    flush_responses()
    parts.append("<|im_start|>assistant\n")
    return "".join(parts)


def _llama3_block(role: str, content: str) -> str:
    return f"<|start_header_id|>{role}<|end_header_id|>\n\n{content}<|eot_id|>"


def _render_llama3(messages: Sequence[Message], tools: Sequence[ToolDescriptor]) -> str:
    system, rest = _split_system(messages)
    if tools:
        signatures = "\n\n".join(_dumps(tool.to_schema()) for tool in tools)
        system += (
            "\n\nYou have access to the following functions. To call a function, "
            'respond with a JSON object of the form {"name": function name, '
            '"parameters": dictionary of argument name and its value}. '
            "Do not use variables.\n\n"
            f"{signatures}"
        )

    parts = ["<|begin_of_text|>", _llama3_block("system", system)]
    for message in rest:
        if isinstance(message, AssistantMessage) and message.tool_calls:
            calls = [
                {"name": call.name, "parameters": _arguments_value(call.arguments)}
                for call in message.tool_calls
            ]
            payload = calls[0] if len(calls) == 1 else calls
            parts.append(_llama3_block("assistant", _dumps(payload)))
        elif isinstance(message, ToolMessage):
            parts.append(_llama3_block("ipython", message.content))
        else:
            parts.append(_llama3_block(message.role, message.content))

    parts.append("<|start_header_id|>assistant<|end_header_id|>\n\n")
    return "".join(parts)


def _render_mistral(messages: Sequence[Message], tools: Sequence[ToolDescriptor]) -> str:
    system, rest = _split_system(messages)
    user_positions = [i for i, message in enumerate(rest) if isinstance(message, UserMessage)]
    first_user = user_positions[0] if user_positions else -1
    last_user = user_positions[-1] if user_positions else -1

    parts = ["<s>"]
    for index, message in enumerate(rest):
        if isinstance(message, UserMessage):
            if index == last_user and tools:
                schemas = _dumps([tool.to_schema() for tool in tools])
                parts.append(f"[AVAILABLE_TOOLS] {schemas}[/AVAILABLE_TOOLS]")
            content = message.content
            if index == first_user:
                content = f"{system}\n\n{content}"
            parts.append(f"[INST] {content}[/INST]")
        elif isinstance(message, AssistantMessage):
            if message.tool_calls:
                calls = [
                    {
                        "name": call.name,
                        "arguments": _arguments_value(call.arguments),
                        "id": call.call_id,
                    }
                    for call in message.tool_calls
                ]
                parts.append(f"[TOOL_CALLS] {_dumps(calls)}</s>")
            else:
                parts.append(f" {message.content}</s>")
        elif isinstance(message, ToolMessage):
            result = _dumps({"content": message.content, "call_id": message.tool_call_id})
            parts.append(f"[TOOL_RESULTS] {result}[/TOOL_RESULTS]")
        else:
            parts.append(f"[INST] {message.content}[/INST]")

    return "".join(parts)


_RENDERERS = {
    ChatFormat.HERMES: _render_hermes,
    ChatFormat.LLAMA3_JSON: _render_llama3,
    ChatFormat.MISTRAL: _render_mistral,
}


def render_prompt(
    messages: Sequence[Message],
    tools: Sequence[ToolDescriptor],
    chat_format: ChatFormat | str = ChatFormat.HERMES,
) -> RenderedPrompt:
    """Render a conversation and tool schema into a raw prompt.

    Args:
        messages: Conversation messages in order
        tools: Tool descriptors to advertise to the model
        chat_format: Template family to render with

    Returns:
        RenderedPrompt carrying the prompt text and its format

    Raises:
        ValueError: If chat_format is not a known format
    """
    fmt = ChatFormat(chat_format)
    return RenderedPrompt(text=_RENDERERS[fmt](messages, tools), chat_format=fmt)
