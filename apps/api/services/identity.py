"""Identity-provider account helpers (email confirmation and profile bootstrap)."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.user import User
from services.credits import ensure_balance
from services.errors import InvalidRequest, NotFound

logger = logging.getLogger(__name__)


def normalize_email(value: Any) -> str:
    """Lower-case and trim an email address; empty string when unusable."""
    text = str(value or "").strip().lower()
    if not text or not re.fullmatch(r"[^@\s]+@[^@\s]+", text):
        return ""
    return text


def display_name_for(email: str) -> str:
    return email.split("@", 1)[0] or "User"


async def find_user_by_email(email: str, db: AsyncSession) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def is_email_confirmed(email: Any, db: AsyncSession) -> bool:
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidRequest("Email is required")
    user = await find_user_by_email(normalized, db)
    confirmed = bool(user and user.email_confirmed_at)
    logger.info("Email confirmation check user_exists=%s confirmed=%s", user is not None, confirmed)
    return confirmed


async def confirm_user_email(email: Any, db: AsyncSession) -> Dict[str, Any]:
    """Mark an account confirmed and bootstrap its profile and credit balance."""
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidRequest("Email is required")

    user = await find_user_by_email(normalized, db)
    if user is None:
        raise NotFound("User not found")

    if user.email_confirmed_at:
        return {"message": "Email already confirmed", "user_id": user.id}

    user.email_confirmed_at = datetime.now(timezone.utc)
    if not user.display_name:
        user.display_name = display_name_for(normalized)
    await ensure_balance(user.id, db, commit=False)
    await db.commit()
    logger.info("Confirmed email user_id=%s", user.id)
    return {"message": "Email confirmed successfully", "user_id": user.id}
