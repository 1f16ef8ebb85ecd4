"""Visualization advice and extraction of structured data from generated text."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from services.inference import InferenceClient
from services.labeled_output import parse_json_object, parse_labeled_lines, parse_verdict

logger = logging.getLogger(__name__)

VISUALIZATION_TYPES = ("chart", "table", "list", "timeline")
VISUALIZATION_SENTINEL = "---VISUALIZATION_DATA---"

ADVICE_LABELS = ("Visualize", "Type", "Title")

DATA_SHAPES = {
    "chart": '{"chartType": "bar|line|pie", "labels": ["string"], "values": [number]}',
    "table": '[{"column": "value"}]',
    "list": '["string"]',
    "timeline": '[{"date": "string", "title": "string", "description": "string"}]',
}


@dataclass(frozen=True)
class NoVisualization:
    @property
    def should_visualize(self) -> bool:
        return False


@dataclass(frozen=True)
class Visualize:
    kind: str
    title: Optional[str] = None

    @property
    def should_visualize(self) -> bool:
        return True


VisualizationAdvice = Union[NoVisualization, Visualize]


def _advice_prompt(prompt: str) -> str:
    return (
        "Decide whether the answer to the following request would benefit from a visualization "
        f"(one of: {', '.join(VISUALIZATION_TYPES)}).\n\n"
        f'Request: "{prompt}"\n\n'
        "Answer with a JSON object only:\n"
        '{"should_visualize": true | false, "visualization_type": "chart|table|list|timeline", "title": "string"}\n'
        "If you cannot produce JSON, answer in this format instead:\n"
        "Visualize: [Yes/No]\n"
        "Type: [chart/table/list/timeline]\n"
        "Title: [Suggested title]"
    )


def parse_advice(raw: str) -> VisualizationAdvice:
    data = parse_json_object(raw)
    if data is not None:
        verdict = data.get("should_visualize")
        kind = data.get("visualization_type")
        title = data.get("title")
    else:
        sections = parse_labeled_lines(raw, ADVICE_LABELS)
        verdict = sections.get("Visualize")
        kind = sections.get("Type")
        title = sections.get("Title")

    if not parse_verdict(verdict):
        return NoVisualization()

    kind_token = str(kind or "").strip().strip("[]").strip().lower()
    if kind_token not in VISUALIZATION_TYPES:
        logger.warning("Visualization advice named an unsupported type: %r", kind_token[:40])
        return NoVisualization()

    title_text = str(title).strip().strip("[]\"").strip() if title else ""
    return Visualize(kind=kind_token, title=title_text or None)


async def advise_visualization(prompt: str, *, inference: InferenceClient) -> VisualizationAdvice:
    """Never blocks generation: any failure means no visualization."""
    if not inference.available:
        return NoVisualization()
    try:
        raw = await inference.complete(
            _advice_prompt(prompt),
            task="visualization_advice",
            json_mode=True,
            max_tokens=150,
            temperature=0.1,
        )
    except Exception as exc:
        logger.warning("Visualization advice fallback: %s", exc)
        return NoVisualization()
    return parse_advice(raw)


def visualization_instruction(advice: Visualize) -> str:
    return (
        f"\n\nAfter the text, output a line containing exactly {VISUALIZATION_SENTINEL} "
        f"followed by a JSON value for a {advice.kind} visualization in this shape: {DATA_SHAPES[advice.kind]}. "
        "Output nothing after the JSON."
    )


def _strip_code_fence(block: str) -> str:
    text = block.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def split_visualization_block(
    raw: str,
    advice: VisualizationAdvice,
) -> Tuple[str, Optional[Dict[str, Any]]]:
    """Separate prose from the trailing data block.

    Returns the prose and a ``{"type", "title", "data"}`` payload, or None when
    the block is absent, empty or not valid JSON.
    """
    text = raw or ""
    if VISUALIZATION_SENTINEL not in text:
        return text.strip(), None

    prose, _, block = text.partition(VISUALIZATION_SENTINEL)
    prose = prose.strip()
    if not isinstance(advice, Visualize):
        return prose, None

    block = _strip_code_fence(block)
    if not block:
        return prose, None
    try:
        data = json.loads(block)
    except ValueError as exc:
        logger.warning("Discarding invalid visualization JSON: %s", exc)
        return prose, None

    if data in (None, {}, []):
        return prose, None
    return prose, {"type": advice.kind, "title": advice.title, "data": data}
