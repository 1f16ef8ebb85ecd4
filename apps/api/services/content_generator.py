"""Content generation against the inference model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from services.errors import UpstreamError
from services.inference import InferenceClient
from services.visualization import (
    NoVisualization,
    VisualizationAdvice,
    Visualize,
    split_visualization_block,
    visualization_instruction,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024
MAX_TOKENS_CEILING = 2048
TOKENS_PER_WORD = 6

SYSTEM_PROMPT = (
    "You write helpful, well-structured content that is halal (permissible according to Islamic "
    "principles). Never include references to alcohol, gambling, sexual content, interest-based "
    "finance or forbidden foods."
)


@dataclass(frozen=True)
class GenerationOptions:
    tone: Optional[str] = None
    word_count: Optional[int] = None
    negative_prompt: Optional[str] = None


@dataclass(frozen=True)
class GeneratedContent:
    text: str
    visualization_data: Optional[Dict[str, Any]] = None


def build_instruction(prompt: str, options: GenerationOptions, advice: VisualizationAdvice) -> str:
    instruction = prompt
    if options.tone:
        instruction = f"Generate a {options.tone} response to: {prompt}"
    if options.word_count:
        instruction = f"{instruction} (in approximately {options.word_count} words)"
    if options.negative_prompt:
        instruction = f"{instruction} (avoid: {options.negative_prompt})"

    instruction = (
        "Generate content that is halal (permissible according to Islamic principles) "
        f"about the following: {instruction}"
    )
    if isinstance(advice, Visualize):
        instruction += visualization_instruction(advice)
    return instruction


def max_tokens_for(options: GenerationOptions) -> int:
    if options.word_count:
        return min(int(options.word_count) * TOKENS_PER_WORD, MAX_TOKENS_CEILING)
    return DEFAULT_MAX_TOKENS


async def generate_text(
    prompt: str,
    options: GenerationOptions,
    *,
    inference: InferenceClient,
    advice: VisualizationAdvice = NoVisualization(),
) -> GeneratedContent:
    """Generate prose (and optionally a visualization payload). Raises UpstreamError."""
    raw = await inference.complete(
        build_instruction(prompt, options, advice),
        task="generation",
        system=SYSTEM_PROMPT,
        max_tokens=max_tokens_for(options),
        temperature=0.7,
        top_p=0.95,
    )
    text, visualization_data = split_visualization_block(raw, advice)
    if not text:
        raise UpstreamError("Inference returned no content")
    if isinstance(advice, Visualize) and visualization_data is None:
        logger.info("Visualization requested (%s) but none was emitted", advice.kind)
    return GeneratedContent(text=text, visualization_data=visualization_data)
