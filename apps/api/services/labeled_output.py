"""Tolerant parsers for language-model answers.

Models are asked for JSON first. When an answer is not valid JSON, the
``Label: value`` convention is parsed line by line instead. None of these
helpers raise on malformed input.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Optional

_EMPTY_LIST_MARKERS = {"none", "n/a", "na", "no", "nothing", "-", "[]"}
_TRUTHY_VERDICTS = {"yes", "true", "y", "1", "haram"}


def parse_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Extract the first JSON object from model output, or None."""
    if not text or not isinstance(text, str):
        return None

    candidate = text.strip()
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", candidate, re.DOTALL | re.IGNORECASE)
    if fenced:
        candidate = fenced.group(1)

    try:
        parsed = json.loads(candidate)
    except ValueError:
        match = re.search(r"\{.*\}", candidate, re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            return None

    return parsed if isinstance(parsed, dict) else None


def _label_pattern(labels: Iterable[str]) -> "re.Pattern[str]":
    ordered = sorted({label.strip() for label in labels if label.strip()}, key=len, reverse=True)
    alternation = "|".join(r"\s+".join(re.escape(word) for word in label.split()) for label in ordered)
    return re.compile(
        r"^\s*(?:[-*#>]\s*)*\**\s*(?P<label>" + alternation + r")\s*\**\s*:\s*\**\s*(?P<value>.*)$",
        re.IGNORECASE,
    )


def parse_labeled_lines(text: Optional[str], labels: Iterable[str]) -> Dict[str, str]:
    """Parse ``Label: value`` blocks.

    Keys of the result are the labels as passed in (not as the model spelled
    them). A value continues over following lines until the next known label.
    Labels missing from the text are missing from the result.
    """
    labels = list(labels)
    if not text or not isinstance(text, str) or not labels:
        return {}

    canonical = {re.sub(r"\s+", " ", label.strip().lower()): label for label in labels}
    pattern = _label_pattern(labels)

    sections: Dict[str, List[str]] = {}
    current: Optional[str] = None
    for line in text.splitlines():
        match = pattern.match(line)
        if match:
            spoken = re.sub(r"\s+", " ", match.group("label").strip().lower())
            current = canonical.get(spoken)
            if current is None:
                continue
            sections[current] = [match.group("value").strip()]
        elif current is not None:
            sections[current].append(line.strip())

    parsed: Dict[str, str] = {}
    for label, chunks in sections.items():
        value = "\n".join(chunk for chunk in chunks if chunk).strip().rstrip("*").strip()
        parsed[label] = value
    return parsed


def _clean_item(item: str) -> str:
    cleaned = item.strip()
    cleaned = re.sub(r"^(?:[-*•]+|\d+[.)])\s*", "", cleaned)
    cleaned = cleaned.strip().strip("[]").strip()
    cleaned = cleaned.strip("\"'`“”").strip()
    return cleaned


def _decode_json_list(text: str) -> Optional[List[str]]:
    if not text.startswith("["):
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    if not isinstance(parsed, list):
        return None
    return [str(item) for item in parsed if item is not None]


def split_list_value(value: Any) -> List[str]:
    """Split a list-ish value (JSON list, comma or newline separated) into clean unique items."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        raw_items = [str(item) for item in value if item is not None]
    else:
        text = str(value).strip()
        decoded = _decode_json_list(text)
        if decoded is not None:
            raw_items = decoded
        else:
            if text.startswith("[") and text.endswith("]"):
                text = text[1:-1]
            raw_items = re.split(r"[\n,]", text)

    items: List[str] = []
    seen = set()
    for raw in raw_items:
        item = _clean_item(raw)
        if not item or item.lower() in _EMPTY_LIST_MARKERS:
            continue
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        items.append(item)
    return items


def parse_verdict(value: Any) -> bool:
    """Read a yes/no verdict; anything unrecognized counts as no."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    token = str(value).strip().strip("[]").strip().lower()
    token = re.split(r"[\s.,;:!]", token, maxsplit=1)[0] if token else ""
    return token in _TRUTHY_VERDICTS
