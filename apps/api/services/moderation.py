"""Content-policy classification and remediation.

The primary classifier asks the general-purpose model for a structured
verdict. When that path is unusable (no client, upstream failure, answer that
cannot be parsed) a zero-shot labeling model decides instead, and offending
phrases are located by keyword proximity. ``classify_content`` never raises.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from config import settings
from services.errors import ClassifierDegraded, UpstreamError
from services.inference import InferenceClient, ZeroShotClient
from services.labeled_output import (
    parse_json_object,
    parse_labeled_lines,
    parse_verdict,
    split_list_value,
)

logger = logging.getLogger(__name__)

POLICY_CATEGORIES = (
    "intoxicants",
    "gambling",
    "explicit sexual content",
    "interest-based finance",
    "prohibited foods",
)

ZERO_SHOT_LABELS = (
    "halal content",
    "haram content",
    "alcohol",
    "gambling",
    "pornography",
    "interest-based finance",
    "pork",
)
COMPLIANT_LABEL = "halal content"

CATEGORY_KEYWORDS: Dict[str, Sequence[str]] = {
    "alcohol": ("alcohol", "wine", "beer", "liquor", "vodka", "whiskey", "drunk", "drinking", "cocktail"),
    "gambling": ("gambling", "gamble", "bet", "casino", "lottery", "poker", "roulette", "jackpot"),
    "pornography": ("porn", "naked", "nude", "sex", "explicit", "erotic"),
    "interest-based finance": ("interest", "riba", "usury", "conventional loan", "payday loan"),
    "pork": ("pork", "bacon", "lard", "pig"),
}

CATEGORY_ALIASES = {
    "intoxicants": "alcohol",
    "intoxicant": "alcohol",
    "alcohol": "alcohol",
    "drugs": "alcohol",
    "gambling": "gambling",
    "explicit sexual content": "pornography",
    "sexual content": "pornography",
    "pornography": "pornography",
    "interest-based finance": "interest-based finance",
    "interest": "interest-based finance",
    "riba": "interest-based finance",
    "usury": "interest-based finance",
    "prohibited foods": "pork",
    "forbidden foods": "pork",
    "pork": "pork",
}

DEFAULT_EXPLANATION = "This content contains elements that are not permissible according to Islamic principles."
REMEDIATION_FALLBACK = (
    "I'm unable to suggest an alternative at this time. "
    "Please try modifying your prompt to avoid haram content."
)

PRIMARY_LABELS = ("Haram", "Categories", "Explanation", "Problematic phrases")

MODERATION_SYSTEM_PROMPT = (
    "You are an Islamic content moderation assistant. You decide whether text contains content "
    "that is haram (forbidden) according to Islamic principles."
)


@dataclass(frozen=True)
class Compliant:
    source: str = "primary"

    @property
    def is_haram(self) -> bool:
        return False


@dataclass(frozen=True)
class Violation:
    explanation: str
    haram_phrases: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    source: str = "primary"

    @property
    def is_haram(self) -> bool:
        return True


ClassificationResult = Union[Compliant, Violation]


class ModerationAnswer(BaseModel):
    """Schema the primary classifier is asked to answer in."""

    haram: bool = False
    categories: List[str] = Field(default_factory=list)
    explanation: Optional[str] = None
    problematic_phrases: List[str] = Field(default_factory=list)

    @field_validator("haram", mode="before")
    @classmethod
    def _coerce_verdict(cls, value):
        return parse_verdict(value)

    @field_validator("categories", "problematic_phrases", mode="before")
    @classmethod
    def _coerce_list(cls, value):
        return split_list_value(value)


def _classification_prompt(text: str) -> str:
    return (
        "Analyze the following text and determine if it contains any content that would be considered "
        "haram according to Islamic principles. Check at least these categories: "
        f"{', '.join(POLICY_CATEGORIES)}.\n\n"
        f'Text to analyze: "{text}"\n\n'
        "If it does, explain why with reference to Islamic principles and list the exact problematic phrases.\n"
        "Answer with a JSON object only:\n"
        "{\n"
        '  "haram": true | false,\n'
        '  "categories": ["string"],\n'
        '  "explanation": "string",\n'
        '  "problematic_phrases": ["string"]\n'
        "}\n"
        "If you cannot produce JSON, answer in this format instead:\n"
        "Haram: [Yes/No]\n"
        "Categories: [List of haram categories found, if any]\n"
        "Explanation: [Why it is haram, if applicable]\n"
        "Problematic phrases: [List of specific phrases that are problematic]"
    )


def parse_moderation_answer(raw: str) -> Optional[ModerationAnswer]:
    """Read the model's verdict from JSON or labeled lines; None when neither is usable."""
    data = parse_json_object(raw)
    if data is not None:
        try:
            return ModerationAnswer.model_validate(data)
        except ValidationError as exc:
            logger.warning("Moderation JSON failed validation: %s", exc.error_count())

    sections = parse_labeled_lines(raw, PRIMARY_LABELS)
    if "Haram" not in sections:
        return None
    return ModerationAnswer.model_validate(
        {
            "haram": sections.get("Haram"),
            "categories": sections.get("Categories"),
            "explanation": sections.get("Explanation") or None,
            "problematic_phrases": sections.get("Problematic phrases"),
        }
    )


_WORD_STRIP = re.compile(r"^[^\w]+|[^\w]+$")


def _normalize_token(word: str) -> str:
    return _WORD_STRIP.sub("", word.lower())


# short stems match inflections only ("betting", not "between")
_SHORT_STEM_LENGTH = 3
_SHORT_STEM_SUFFIX = re.compile(r"(?:s|es|ting|ted|tors?|y|ual(?:ly|ity)?)?")


def _token_matches(token: str, part: str) -> bool:
    if not token.startswith(part):
        return False
    if len(part) > _SHORT_STEM_LENGTH:
        return True
    return bool(_SHORT_STEM_SUFFIX.fullmatch(token[len(part):]))


def _find_keyword(tokens: List[str], keyword: str) -> int:
    parts = keyword.split()
    for index in range(len(tokens) - len(parts) + 1):
        if all(_token_matches(tokens[index + offset], part) for offset, part in enumerate(parts)):
            return index
    return -1


def extract_haram_phrases(text: str, categories: Sequence[str], window: int = 3) -> List[str]:
    """Return each matched keyword with ``window`` words of context on both sides, deduplicated."""
    words = (text or "").split()
    tokens = [_normalize_token(word) for word in words]

    phrases: List[str] = []
    seen = set()
    for category in categories:
        key = CATEGORY_ALIASES.get(str(category).strip().lower())
        for keyword in CATEGORY_KEYWORDS.get(key or "", ()):
            index = _find_keyword(tokens, keyword)
            if index < 0:
                continue
            start = max(0, index - window)
            end = min(len(words), index + len(keyword.split()) + window)
            phrase = " ".join(words[start:end])
            if phrase.lower() in seen:
                continue
            seen.add(phrase.lower())
            phrases.append(phrase)
    return phrases


async def _classify_primary(text: str, inference: InferenceClient) -> ClassificationResult:
    if not inference.available:
        raise ClassifierDegraded("inference client unavailable")

    try:
        raw = await inference.complete(
            _classification_prompt(text),
            task="moderation",
            system=MODERATION_SYSTEM_PROMPT,
            json_mode=True,
            max_tokens=512,
            temperature=0.1,
        )
    except UpstreamError as exc:
        raise ClassifierDegraded(str(exc)) from exc

    answer = parse_moderation_answer(raw)
    if answer is None:
        raise ClassifierDegraded("unparsable moderation answer")

    if not answer.haram:
        return Compliant(source="primary")

    phrases = answer.problematic_phrases or extract_haram_phrases(text, answer.categories)
    return Violation(
        explanation=(answer.explanation or "").strip() or DEFAULT_EXPLANATION,
        haram_phrases=phrases,
        categories=answer.categories,
        source="primary",
    )


async def _classify_fallback(text: str, zero_shot: ZeroShotClient) -> ClassificationResult:
    try:
        scores = await zero_shot.classify(text, ZERO_SHOT_LABELS)
    except UpstreamError as exc:
        logger.error("Zero-shot fallback unavailable, prompt left unclassified: %s", exc)
        return Compliant(source="unclassified")

    threshold = float(settings.ZERO_SHOT_THRESHOLD)
    flagged = [
        label
        for label, score in sorted(scores.items(), key=lambda item: item[1], reverse=True)
        if label != COMPLIANT_LABEL and score > threshold
    ]
    if not flagged:
        return Compliant(source="fallback")

    return Violation(
        explanation=(
            f"The content appears to contain references to {', '.join(flagged)}, "
            "which is not permissible according to Islamic principles."
        ),
        haram_phrases=extract_haram_phrases(text, flagged),
        categories=flagged,
        source="fallback",
    )


async def classify_content(
    text: str,
    *,
    inference: InferenceClient,
    zero_shot: ZeroShotClient,
) -> ClassificationResult:
    try:
        return await _classify_primary(text, inference)
    except ClassifierDegraded as exc:
        logger.warning("Primary classifier degraded, using zero-shot fallback: %s", exc)
    return await _classify_fallback(text, zero_shot)


async def suggest_alternative(
    original_prompt: str,
    violating_phrases: Sequence[str],
    *,
    inference: InferenceClient,
) -> str:
    """Propose a compliant rewrite of a refused prompt. Never raises."""
    phrase_note = ""
    if violating_phrases:
        phrase_note = f"Specifically, these phrases were identified as problematic: {', '.join(violating_phrases)}\n\n"

    prompt = (
        "The following prompt has been identified as containing elements that may not be permissible "
        "according to Islamic principles:\n\n"
        f'"{original_prompt}"\n\n'
        f"{phrase_note}"
        "Rewrite this prompt to be fully compliant with Islamic principles while keeping its original intent "
        "as much as possible. Remove or modify any references to alcohol, gambling, inappropriate relationships, "
        "interest-based finance, or other elements that would be considered haram.\n\n"
        "Provide ONLY the rewritten prompt without any explanation or introduction."
    )
    try:
        rewritten = await inference.complete(
            prompt,
            task="remediation",
            system="You are an Islamic content assistant.",
            max_tokens=512,
            temperature=0.1,
        )
    except Exception as exc:
        logger.warning("Remediation fallback: %s", exc)
        return REMEDIATION_FALLBACK

    rewritten = rewritten.strip().strip("\"“”").strip()
    return rewritten or REMEDIATION_FALLBACK
