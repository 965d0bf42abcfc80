"""Inference engine interface and the Ollama-backed implementation."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import AsyncIterator

from toolrelay.conversation.types import Message
from toolrelay.engine.templates import (
    STOP_MARKERS,
    ChatFormat,
    RenderedPrompt,
    render_prompt,
)
from toolrelay.exceptions import GenerationError
from toolrelay.ollama import OllamaClient
from toolrelay.tools.types import ToolDescriptor

logger = logging.getLogger(__name__)


class InferenceEngine(ABC):
    """The language model as seen by the orchestrator.

    An engine renders prompts and produces a lazy, finite stream of text
    fragments for a prompt. The stream ends at the model's end-of-generation
    marker or when the token budget is used up, and cannot be restarted.
    """

    @abstractmethod
    def render_prompt(
        self, messages: Sequence[Message], tools: Sequence[ToolDescriptor]
    ) -> RenderedPrompt:
        """Render the conversation and tool schema into a prompt."""

    @abstractmethod
    def generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        """Stream generated text fragments for a prompt.

        Raises:
            GenerationError: If the engine fails to generate
        """


class OllamaEngine(InferenceEngine):
    """Engine that renders prompts locally and generates with Ollama.

    Attributes:
        client: The Ollama client
        model: Model name
        chat_format: Template family used for rendering and parsing
        temperature: Sampling temperature (0 for greedy decoding)
    """

    def __init__(
        self,
        client: OllamaClient,
        model: str,
        chat_format: ChatFormat | str = ChatFormat.HERMES,
        temperature: float = 0.0,
    ) -> None:
        self.client = client
        self.model = model
        self.chat_format = ChatFormat(chat_format)
        self.temperature = temperature

    def render_prompt(
        self, messages: Sequence[Message], tools: Sequence[ToolDescriptor]
    ) -> RenderedPrompt:
        return render_prompt(messages, tools, self.chat_format)

    async def generate(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        options = {
            "num_predict": max_tokens,
            "stop": list(STOP_MARKERS[self.chat_format]),
            "temperature": self.temperature,
        }

        try:
            async for chunk in self.client.generate_stream(
                model=self.model, prompt=prompt, options=options
            ):
                fragment = chunk.get("response") or ""
                if fragment:
                    yield fragment
                if chunk.get("done"):
                    logger.debug(
                        f"Generation finished: reason={chunk.get('done_reason')}, "
                        f"eval_count={chunk.get('eval_count')}"
                    )
                    break
        except Exception as e:
            raise GenerationError(f"Failed to generate with {self.model}: {e}") from e
