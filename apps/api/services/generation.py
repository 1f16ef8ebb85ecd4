"""Content generation pipeline.

validate -> check balance -> classify -> (remediate | advise -> generate)
-> debit -> persist -> respond. Each step may end the request early; a
refused or failed request is never charged.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import async_session_maker
from models.content import Content
from services.content_generator import GeneratedContent, GenerationOptions, generate_text
from services.credits import debit_credits, ensure_balance
from services.errors import InsufficientCredits, InvalidRequest, PolicyViolation, UpstreamError
from services.inference import InferenceClient, ZeroShotClient
from services.moderation import Violation, classify_content, suggest_alternative
from services.visualization import advise_visualization

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
DEFAULT_TOOL_TYPE = "general"


def _safe_text(value: Any) -> str:
    return str(value or "").strip()


def _title_for(prompt: str) -> str:
    if len(prompt) <= TITLE_MAX_CHARS:
        return prompt
    return prompt[:TITLE_MAX_CHARS] + "..."


def _options_from_payload(payload: Dict[str, Any]) -> GenerationOptions:
    word_count = payload.get("wordCount")
    return GenerationOptions(
        tone=_safe_text(payload.get("tone")) or None,
        word_count=int(word_count) if word_count else None,
        negative_prompt=_safe_text(payload.get("negativePrompt")) or None,
    )


async def save_content_artifact(
    *,
    user_id: str,
    prompt: str,
    generated: GeneratedContent,
    tool_type: str,
    db: AsyncSession,
) -> Content:
    row = Content(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=_title_for(prompt),
        content=generated.text,
        visualization_data=generated.visualization_data,
        type=tool_type,
    )
    db.add(row)
    await db.commit()
    return row


async def _commit_generation(
    *,
    user_id: str,
    prompt: str,
    generated: GeneratedContent,
    tool_type: str,
) -> Tuple[Optional[str], int]:
    """Debit and persist on a session of its own, independent of the request scope."""
    async with async_session_maker() as db:
        try:
            balance = await debit_credits(
                user_id,
                db,
                amount=max(int(settings.CREDIT_COST_GENERATION), 0),
                reason="Content generation",
                reference_type="content_generation",
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Credit debit failed user_id=%s: %s", user_id, exc)
            raise UpstreamError("Error updating credits") from exc

        remaining = int(balance.total_credits) if balance is not None else 0
        try:
            row = await save_content_artifact(
                user_id=user_id,
                prompt=prompt,
                generated=generated,
                tool_type=tool_type,
                db=db,
            )
        except SQLAlchemyError as exc:
            # already charged; deliver the content without an id
            await db.rollback()
            logger.error("Generated content not persisted user_id=%s tool_type=%s: %s", user_id, tool_type, exc)
            return None, remaining
        return row.id, remaining


async def generate_content_service(
    *,
    user_id: Optional[str],
    payload: Dict[str, Any],
    db: AsyncSession,
    inference: InferenceClient,
    zero_shot: ZeroShotClient,
) -> Dict[str, Any]:
    prompt = _safe_text(payload.get("prompt"))
    if not prompt or not user_id:
        raise InvalidRequest("Missing required parameters")

    tool_type = _safe_text(payload.get("toolType")) or DEFAULT_TOOL_TYPE
    options = _options_from_payload(payload)
    log_context = f"user_id={user_id} tool_type={tool_type} prompt_chars={len(prompt)}"

    try:
        balance = await ensure_balance(user_id, db)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Error checking credits %s: %s", log_context, exc)
        raise UpstreamError("Error checking credits") from exc
    # nothing pending; release the request transaction before inference
    await db.commit()
    if int(balance.total_credits or 0) <= 0:
        logger.info("Generation refused for insufficient credits %s", log_context)
        raise InsufficientCredits()

    verdict = await classify_content(prompt, inference=inference, zero_shot=zero_shot)
    if isinstance(verdict, Violation):
        logger.info(
            "Policy violation %s source=%s categories=%s",
            log_context,
            verdict.source,
            ",".join(verdict.categories),
        )
        suggestion = await suggest_alternative(prompt, verdict.haram_phrases, inference=inference)
        raise PolicyViolation(
            explanation=verdict.explanation,
            haram_phrases=verdict.haram_phrases,
            suggested_rewrite=suggestion,
            categories=verdict.categories,
        )

    advice = await advise_visualization(prompt, inference=inference)
    generated = await generate_text(prompt, options, inference=inference, advice=advice)

    # once content exists, finish charging and saving even if the caller goes away
    content_id, remaining = await asyncio.shield(
        _commit_generation(
            user_id=user_id,
            prompt=prompt,
            generated=generated,
            tool_type=tool_type,
        )
    )
    logger.info(
        "Content generated %s verdict_source=%s visualization=%s persisted=%s",
        log_context,
        verdict.source,
        generated.visualization_data is not None,
        content_id is not None,
    )
    return {
        "content": generated.text,
        "contentId": content_id,
        "visualizationData": generated.visualization_data,
        "creditsRemaining": remaining,
    }
