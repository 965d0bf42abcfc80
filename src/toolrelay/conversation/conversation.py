"""Append-only conversation log."""

import logging
from collections.abc import Iterable, Iterator

from toolrelay.conversation.types import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolMessage,
)

logger = logging.getLogger(__name__)


class Conversation:
    """Ordered, append-only log of messages for one conversation.

    Messages are never edited or removed. The log lives in memory for the
    lifetime of the conversation only.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        """Initialize a Conversation.

        Args:
            messages: Initial messages, appended in order
        """
        self._messages: list[Message] = []
        for message in messages:
            self.append(message)

    @classmethod
    def with_system_prompt(cls, prompt: str | None) -> "Conversation":
        """Create a conversation seeded with a system message.

        Args:
            prompt: System prompt text; None or empty for no system message

        Returns:
            New Conversation
        """
        if not prompt:
            return cls()
        return cls([SystemMessage(content=prompt)])

    def append(self, message: Message) -> None:
        """Add a message to the end of the log.

        Args:
            message: The message to add
        """
        self._messages.append(message)
        logger.debug(f"Appended {message.role} message ({len(self._messages)} total)")

    def render(self) -> tuple[Message, ...]:
        """Get all messages in append order.

        Returns:
            Immutable snapshot of the log
        """
        return tuple(self._messages)

    def tool_call_ids(self) -> set[str]:
        """Get every tool-call id requested by assistant messages in the log."""
        return {
            call.call_id
            for message in self._messages
            if isinstance(message, AssistantMessage)
            for call in message.tool_calls
        }

    def answered_call_ids(self) -> set[str]:
        """Get the tool-call ids that already have a tool message."""
        return {
            message.tool_call_id
            for message in self._messages
            if isinstance(message, ToolMessage)
        }

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
