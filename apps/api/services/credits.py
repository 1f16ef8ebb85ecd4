"""Credit balance and ledger helpers.

Every balance mutation is a single ``UPDATE ... SET col = col + :n`` so two
concurrent requests for the same user cannot lose an update. Debits carry a
``total_credits >= :n`` guard so the balance never goes negative.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_balance import CreditBalance
from models.credit_ledger import CreditLedger
from services.errors import InsufficientCredits

logger = logging.getLogger(__name__)

CREDIT_FIELDS = ("total", "referral", "ad")


async def get_balance(user_id: str, db: AsyncSession) -> Optional[CreditBalance]:
    result = await db.execute(
        select(CreditBalance)
        .where(CreditBalance.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def serialize_balance(balance: Optional[CreditBalance]) -> Dict[str, Any]:
    if balance is None:
        return {"total_credits": 0, "referral_credits": 0, "ad_credits": 0, "updated_at": None}
    return {
        "total_credits": int(balance.total_credits or 0),
        "referral_credits": int(balance.referral_credits or 0),
        "ad_credits": int(balance.ad_credits or 0),
        "updated_at": balance.updated_at.isoformat() if balance.updated_at else None,
    }


def _append_entry(
    db: AsyncSession,
    user_id: str,
    *,
    entry_type: str,
    delta_credits: int,
    balance_after: Optional[int],
    reason: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> None:
    db.add(
        CreditLedger(
            user_id=user_id,
            entry_type=entry_type,
            delta_credits=int(delta_credits),
            balance_after=balance_after,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
    )


async def ensure_balance(
    user_id: str,
    db: AsyncSession,
    *,
    initial_credits: Optional[int] = None,
    commit: bool = True,
) -> CreditBalance:
    """Return the user's balance, creating it with the new-user grant when absent."""
    existing = await get_balance(user_id, db)
    if existing is not None:
        return existing

    grant = settings.NEW_USER_CREDIT_GRANT if initial_credits is None else initial_credits
    grant = max(int(grant), 0)
    balance = CreditBalance(user_id=user_id, total_credits=grant, referral_credits=0, ad_credits=0)
    db.add(balance)
    try:
        await db.flush()
    except IntegrityError:
        # created by a concurrent request
        await db.rollback()
        existing = await get_balance(user_id, db)
        if existing is None:
            raise
        return existing

    _append_entry(
        db,
        user_id,
        entry_type="initial_grant",
        delta_credits=grant,
        balance_after=grant,
        reason="New user credit grant",
    )
    if commit:
        await db.commit()
    logger.info("Created credit balance user_id=%s grant=%s", user_id, grant)
    return await get_balance(user_id, db)


async def debit_credits(
    user_id: str,
    db: AsyncSession,
    *,
    amount: int = 1,
    reason: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    commit: bool = True,
) -> CreditBalance:
    """Conditionally decrement ``total_credits``; raises InsufficientCredits when it would go negative."""
    debit = max(int(amount), 0)
    if debit == 0:
        balance = await get_balance(user_id, db)
        if balance is None:
            raise InsufficientCredits()
        return balance

    result = await db.execute(
        update(CreditBalance)
        .where(
            CreditBalance.user_id == user_id,
            CreditBalance.total_credits >= debit,
        )
        .values(
            total_credits=CreditBalance.total_credits - debit,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InsufficientCredits()

    balance = await get_balance(user_id, db)
    _append_entry(
        db,
        user_id,
        entry_type="debit",
        delta_credits=-debit,
        balance_after=balance.total_credits if balance is not None else None,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    if commit:
        await db.commit()
    return balance


async def credit_user(
    user_id: str,
    db: AsyncSession,
    *,
    amount: int,
    field: str = "total",
    entry_type: str,
    reason: Optional[str] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    commit: bool = True,
) -> CreditBalance:
    """Atomically add credits.

    ``total_credits`` always grows by ``amount``; ``field="referral"`` or
    ``"ad"`` also grows that bucket. A missing balance row is created from a
    zero base, so the first credit becomes its starting value. A concurrent
    creation surfaces as IntegrityError for the caller to retry.
    """
    if field not in CREDIT_FIELDS:
        raise ValueError(f"Unknown credit field: {field}")
    grant = int(amount)
    if grant <= 0:
        raise ValueError("amount must be greater than 0")

    values: Dict[str, Any] = {
        "total_credits": CreditBalance.total_credits + grant,
        "updated_at": func.now(),
    }
    if field == "referral":
        values["referral_credits"] = CreditBalance.referral_credits + grant
    elif field == "ad":
        values["ad_credits"] = CreditBalance.ad_credits + grant

    result = await db.execute(
        update(CreditBalance)
        .where(CreditBalance.user_id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.add(
            CreditBalance(
                user_id=user_id,
                total_credits=grant,
                referral_credits=grant if field == "referral" else 0,
                ad_credits=grant if field == "ad" else 0,
            )
        )
        await db.flush()

    balance = await get_balance(user_id, db)
    _append_entry(
        db,
        user_id,
        entry_type=entry_type,
        delta_credits=grant,
        balance_after=balance.total_credits if balance is not None else None,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    if commit:
        await db.commit()
    return balance


async def get_credit_summary(user_id: str, db: AsyncSession) -> Dict[str, Any]:
    balance = await ensure_balance(user_id, db)
    result = await db.execute(
        select(CreditLedger)
        .where(CreditLedger.user_id == user_id)
        .order_by(CreditLedger.created_at.desc())
        .limit(30)
    )
    entries = result.scalars().all()
    return {
        **serialize_balance(balance),
        "costs": {
            "content_generation": max(int(settings.CREDIT_COST_GENERATION), 0),
        },
        "bonuses": {
            "referrer": max(int(settings.REFERRER_BONUS_CREDITS), 0),
            "referred": max(int(settings.REFERRED_BONUS_CREDITS), 0),
        },
        "recent_entries": [
            {
                "id": entry.id,
                "entry_type": entry.entry_type,
                "delta_credits": entry.delta_credits,
                "balance_after": entry.balance_after,
                "reason": entry.reason,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }
