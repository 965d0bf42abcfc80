"""Thin async wrapper over ollama.AsyncClient.

toolrelay renders its own prompts, so completions are requested in raw mode
and the server applies no chat template. The wrapper only adds reachability
and model checks and converts streamed chunks to plain dicts.
"""

import logging
from typing import Any, AsyncIterator

import ollama

logger = logging.getLogger(__name__)


def _as_dict(chunk: Any) -> dict[str, Any]:
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump()
    if isinstance(chunk, dict):
        return chunk
    return vars(chunk)


class OllamaClient:
    """Async client for the inference backend.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str) -> None:
        self.host = host
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"Using Ollama at {host}")

    async def check_connection(self) -> bool:
        """Check whether the server answers at all.

        Returns:
            bool: True if the server responded
        """
        try:
            await self._client.list()
        except Exception as e:
            logger.warning(f"Ollama at {self.host} is not reachable: {e}")
            return False
        return True

    async def check_model(self, model: str) -> bool:
        """Check whether a model is available on the server.

        Args:
            model: Model name, e.g. "qwen2.5:7b"

        Returns:
            bool: True if the server knows the model
        """
        try:
            await self._client.show(model)
        except Exception as e:
            logger.warning(f"Model {model} is not available on {self.host}: {e}")
            return False
        return True

    async def generate_stream(
        self,
        model: str,
        prompt: str,
        options: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a raw-prompt completion.

        Args:
            model: The model name to use
            prompt: Fully rendered prompt text
            options: Model parameters (num_predict, stop, temperature, ...)

        Yields:
            dict: Response chunks. Each chunk contains:
                  - response: str - The next text fragment
                  - done: bool - True on the final chunk
                  - (final chunk includes done_reason, eval_count, etc.)

        Raises:
            Exception: If the Ollama API request fails

        Example:
            >>> async for chunk in client.generate_stream(
            ...     model="qwen2.5:7b",
            ...     prompt="<|im_start|>user\\nHello<|im_end|>\\n<|im_start|>assistant\\n",
            ... ):
            ...     print(chunk["response"], end="")
        """
        logger.debug(f"Generating with {model} from a {len(prompt)} character prompt")
        try:
            stream = await self._client.generate(
                model=model,
                prompt=prompt,
                raw=True,
                stream=True,
                options=options,
            )
            async for chunk in stream:
                yield _as_dict(chunk)
        except Exception as e:
            logger.error(f"Generation with {model} failed: {e}")
            raise

    async def close(self) -> None:
        """Release the client.

        ollama.AsyncClient manages its own httpx connections, so there is
        nothing to release yet.
        """
        logger.debug("OllamaClient closed")
