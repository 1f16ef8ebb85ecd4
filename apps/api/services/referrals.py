"""Referral recording and bonus propagation."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_balance import CreditBalance
from models.referral import Referral
from models.user import User
from services.credits import credit_user
from services.errors import InvalidReferred, InvalidReferrer, InvalidRequest, UpstreamError

logger = logging.getLogger(__name__)

ALREADY_EXISTS_RESPONSE = {"message": "Referral already exists"}
MAX_ATTEMPTS = 2


async def _user_exists(user_id: str, db: AsyncSession) -> bool:
    result = await db.execute(select(User.id).where(User.id == user_id))
    return result.scalar_one_or_none() is not None


async def _referral_exists(referrer_id: str, referred_id: str, db: AsyncSession) -> bool:
    result = await db.execute(
        select(Referral.id).where(
            Referral.referrer_id == referrer_id,
            Referral.referred_id == referred_id,
        )
    )
    return result.first() is not None


async def _record_referral(referrer_id: str, referred_id: str, db: AsyncSession) -> Dict[str, Any]:
    if await _referral_exists(referrer_id, referred_id, db):
        return dict(ALREADY_EXISTS_RESPONSE)

    referral = Referral(id=str(uuid.uuid4()), referrer_id=referrer_id, referred_id=referred_id)
    db.add(referral)
    await db.flush()

    await credit_user(
        referrer_id,
        db,
        amount=max(int(settings.REFERRER_BONUS_CREDITS), 1),
        field="referral",
        entry_type="referral_bonus",
        reason="Referral bonus for inviting a new user",
        reference_type="referral",
        reference_id=referral.id,
        commit=False,
    )
    await credit_user(
        referred_id,
        db,
        amount=max(int(settings.REFERRED_BONUS_CREDITS), 1),
        field="total",
        entry_type="signup_bonus",
        reason="Signup bonus for joining through a referral",
        reference_type="referral",
        reference_id=referral.id,
        commit=False,
    )
    await db.commit()
    return {"success": True, "message": "Referral processed successfully"}


async def process_referral(
    referrer_id: Optional[str],
    referred_id: Optional[str],
    db: AsyncSession,
) -> Dict[str, Any]:
    """Record a referral once and credit both parties.

    A repeated pair is a successful no-op. The referral row and both credit
    mutations commit together.
    """
    referrer_id = str(referrer_id or "").strip()
    referred_id = str(referred_id or "").strip()
    if not referrer_id or not referred_id:
        raise InvalidRequest("Missing required parameters")
    if referrer_id == referred_id:
        raise InvalidReferrer()

    try:
        if not await _user_exists(referrer_id, db):
            raise InvalidReferrer()
        if not await _user_exists(referred_id, db):
            raise InvalidReferred()
    except SQLAlchemyError as exc:
        raise UpstreamError() from exc

    for attempt in range(MAX_ATTEMPTS):
        try:
            response = await _record_referral(referrer_id, referred_id, db)
        except IntegrityError:
            # a concurrent request inserted the pair or created a balance row; re-evaluate
            await db.rollback()
            logger.info("Referral write conflict attempt=%s referrer_id=%s", attempt + 1, referrer_id)
            continue
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Referral processing failed referrer_id=%s referred_id=%s: %s", referrer_id, referred_id, exc)
            raise UpstreamError("Failed to create referral") from exc

        if response.get("success"):
            logger.info("Referral recorded referrer_id=%s referred_id=%s", referrer_id, referred_id)
        return response

    raise UpstreamError("Failed to create referral")


async def get_referral_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    count_result = await db.execute(
        select(func.count(Referral.id)).where(Referral.referrer_id == user_id)
    )
    credits_result = await db.execute(
        select(CreditBalance.referral_credits).where(CreditBalance.user_id == user_id)
    )
    base_url = settings.PUBLIC_APP_URL.rstrip("/")
    return {
        "referral_count": int(count_result.scalar() or 0),
        "referral_credits": int(credits_result.scalar() or 0),
        "referral_link": f"{base_url}/signup?ref={user_id}",
    }
