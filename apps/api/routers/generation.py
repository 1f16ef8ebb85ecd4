"""Content generation router."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user_record, ensure_user_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.errors import InvalidRequest
from services.generation import generate_content_service
from services.inference import InferenceClient, ZeroShotClient, get_inference_client, get_zero_shot_client

router = APIRouter()
logger = logging.getLogger(__name__)


class GenerateContentRequest(BaseModel):
    prompt: Optional[str] = None
    negativePrompt: Optional[str] = None
    wordCount: Optional[int] = Field(default=None, ge=1, le=5000)
    tone: Optional[str] = None
    toolType: Optional[str] = None
    userId: Optional[str] = None


@router.post("/generate-content")
async def generate_content(
    request: GenerateContentRequest,
    _rate_limit: None = Depends(rate_limit("generate_content", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
    zero_shot: ZeroShotClient = Depends(get_zero_shot_client),
):
    if not (request.prompt or "").strip() or not request.userId:
        raise InvalidRequest("Missing required parameters")

    scoped_user_id = ensure_user_scope(auth.user_id, request.userId)
    await ensure_user_record(db, auth)

    return await generate_content_service(
        user_id=scoped_user_id,
        payload=request.model_dump(exclude_none=True),
        db=db,
        inference=inference,
        zero_shot=zero_shot,
    )
