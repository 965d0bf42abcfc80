"""Inference engine adapter: prompt templates, generation and turn parsing.

This package renders conversations into raw prompts for a chat format,
streams generations from the inference backend, and parses generated turns
back into text and tool calls using the same format.
"""

from toolrelay.engine.engine import InferenceEngine, OllamaEngine
from toolrelay.engine.parser import ParsedTurn, parse_turn
from toolrelay.engine.templates import ChatFormat, RenderedPrompt, render_prompt

__all__ = [
    "ChatFormat",
    "InferenceEngine",
    "OllamaEngine",
    "ParsedTurn",
    "RenderedPrompt",
    "parse_turn",
    "render_prompt",
]
