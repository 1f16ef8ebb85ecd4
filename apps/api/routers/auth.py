"""
Identity endpoints: email confirmation status, development confirmation and profile.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.credits import get_balance, serialize_balance
from services.identity import confirm_user_email, is_email_confirmed
from services.session_token import create_session_token

router = APIRouter()


class EmailRequest(BaseModel):
    email: Optional[str] = None


class CurrentUserResponse(BaseModel):
    user_id: str
    email: str
    display_name: Optional[str] = None
    email_confirmed: bool = False
    total_credits: int = 0
    referral_credits: int = 0
    ad_credits: int = 0


@router.post("/check-email-confirmed")
async def check_email_confirmed(
    request: EmailRequest,
    _rate_limit: None = Depends(rate_limit("check_email_confirmed", limit=60, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    return {"confirmed": await is_email_confirmed(request.email, db)}


@router.post("/dev-confirm-user")
async def dev_confirm_user(
    request: EmailRequest,
    db: AsyncSession = Depends(get_db),
):
    """Confirm an account without the email round trip. Development deployments only."""
    if not settings.DEV_AUTH_ENABLED:
        raise HTTPException(status_code=404, detail="Not Found")

    result = await confirm_user_email(request.email, db)
    result["session_token"] = create_session_token(result["user_id"])["token"]
    return result


@router.get("/auth/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get current user profile and credit balance."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    balance = serialize_balance(await get_balance(user.id, db))
    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        email_confirmed=user.email_confirmed_at is not None,
        total_credits=balance["total_credits"],
        referral_credits=balance["referral_credits"],
        ad_credits=balance["ad_credits"],
    )
