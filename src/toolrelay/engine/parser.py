"""Tool-call parser for generated assistant turns.

parse_turn is a pure function: the same text, format and id seed always give
the same ParsedTurn. Text that does not contain well-formed tool-call syntax
is returned unchanged as plain content with no tool calls; parsing never
raises for malformed model output.
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, NamedTuple

from toolrelay.conversation.types import ToolCallRequest
from toolrelay.engine.templates import ChatFormat

logger = logging.getLogger(__name__)

_HERMES_CALL = re.compile(r"<tool_call>(.*?)</tool_call>", re.DOTALL)
_LLAMA3_PYTHON_TAG = "<|python_tag|>"
_MISTRAL_CALLS_TAG = "[TOOL_CALLS]"


@dataclass(frozen=True)
class ParsedTurn:
    """Structured form of one generated assistant turn.

    Attributes:
        content: Free text of the turn (possibly empty)
        tool_calls: Requested tool calls in emission order
    """

    content: str
    tool_calls: tuple[ToolCallRequest, ...] = ()

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class MalformedToolCall(ValueError):
    """Tool-call syntax was present but could not be decoded."""


class _RawCall(NamedTuple):
    name: str
    arguments: str
    call_id: str | None


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise MalformedToolCall(f"invalid JSON in tool call: {e}") from e


def _normalize_call(obj: Any, argument_keys: tuple[str, ...]) -> _RawCall:
    """Validate one decoded call object and serialize its arguments."""
    if not isinstance(obj, dict):
        raise MalformedToolCall(f"tool call is not an object: {obj!r}")

    name = obj.get("name")
    if not isinstance(name, str) or not name.strip():
        raise MalformedToolCall("tool call has no name")

    arguments = next((obj[key] for key in argument_keys if key in obj), {})
    if isinstance(arguments, str):
        serialized = arguments
    elif isinstance(arguments, dict):
        serialized = json.dumps(arguments, ensure_ascii=False)
    else:
        raise MalformedToolCall(f"arguments of {name} are not an object")

    call_id = obj.get("id")
    if not isinstance(call_id, str) or not call_id:
        call_id = None

    return _RawCall(name=name.strip(), arguments=serialized, call_id=call_id)


def _parse_hermes(text: str) -> tuple[str, list[_RawCall]]:
    bodies = _HERMES_CALL.findall(text)
    if not bodies:
        return text, []

    calls = [_normalize_call(_loads(body.strip()), ("arguments", "parameters")) for body in bodies]
    return _HERMES_CALL.sub("", text).strip(), calls


def _parse_llama3(text: str) -> tuple[str, list[_RawCall]]:
    stripped = text.strip()
    if stripped.startswith(_LLAMA3_PYTHON_TAG):
        stripped = stripped[len(_LLAMA3_PYTHON_TAG):].strip()

    if not stripped.startswith(("{", "[")):
        return text, []

    try:
        payload = json.loads(stripped)
    except ValueError:
        return text, []

    items = payload if isinstance(payload, list) else [payload]
    if not items or not all(isinstance(item, dict) and "name" in item for item in items):
        # A JSON answer, not a call
        return text, []

    return "", [_normalize_call(item, ("parameters", "arguments")) for item in items]


def _parse_mistral(text: str) -> tuple[str, list[_RawCall]]:
    index = text.find(_MISTRAL_CALLS_TAG)
    if index == -1:
        return text, []

    remainder = text[index + len(_MISTRAL_CALLS_TAG):].lstrip()
    try:
        payload, _ = json.JSONDecoder().raw_decode(remainder)
    except ValueError as e:
        raise MalformedToolCall(f"invalid JSON after {_MISTRAL_CALLS_TAG}: {e}") from e

    items = payload if isinstance(payload, list) else [payload]
    if not items:
        raise MalformedToolCall("empty tool call list")

    return text[:index].strip(), [_normalize_call(item, ("arguments",)) for item in items]


_PARSERS = {
    ChatFormat.HERMES: _parse_hermes,
    ChatFormat.LLAMA3_JSON: _parse_llama3,
    ChatFormat.MISTRAL: _parse_mistral,
}


def fallback_call_id(seed: int, index: int, chat_format: ChatFormat) -> str:
    """Derive a call id for a call the model emitted without one.

    Args:
        seed: Caller-supplied seed (the orchestrator uses the log length)
        index: Position of the call within the turn
        chat_format: Format of the turn; mistral ids are 9 alphanumerics

    Returns:
        Deterministic call id
    """
    digest = hashlib.sha1(f"{seed}:{index}".encode()).hexdigest()
    if chat_format is ChatFormat.MISTRAL:
        return digest[:9]
    return f"call_{digest[:12]}"


def parse_turn(
    text: str, chat_format: ChatFormat | str, id_seed: int = 0
) -> ParsedTurn:
    """Extract free text and tool calls from a generated turn.

    Args:
        text: Complete raw text of one assistant turn
        chat_format: Format the prompt was rendered with
        id_seed: Seed for ids of calls that do not carry one

    Returns:
        ParsedTurn; malformed tool-call syntax yields the full text as
        content and no tool calls
    """
    fmt = ChatFormat(chat_format)

    try:
        content, raw_calls = _PARSERS[fmt](text)
    except MalformedToolCall as e:
        logger.info(f"Treating turn as plain text: {e}")
        return ParsedTurn(content=text)

    if not raw_calls:
        return ParsedTurn(content=text)

    calls = tuple(
        ToolCallRequest(
            call_id=raw.call_id or fallback_call_id(id_seed, index, fmt),
            name=raw.name,
            arguments=raw.arguments,
        )
        for index, raw in enumerate(raw_calls)
    )
    logger.debug(f"Parsed {len(calls)} tool calls: {[call.name for call in calls]}")
    return ParsedTurn(content=content, tool_calls=calls)
