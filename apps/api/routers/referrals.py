"""Referral router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.referrals import get_referral_summary, process_referral

router = APIRouter()


class ReferralRequest(BaseModel):
    referrerId: Optional[str] = None
    referredId: Optional[str] = None


@router.post("/handle-referral")
async def handle_referral(
    request: ReferralRequest,
    _rate_limit: None = Depends(rate_limit("handle_referral", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    if request.referredId:
        ensure_user_scope(auth.user_id, request.referredId)
    return await process_referral(request.referrerId, request.referredId, db)


@router.get("/referrals/summary")
async def referral_summary(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_referral_summary(auth.user_id, db)
