"""Request authentication and per-user scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.user import User
from services.session_token import read_session_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthContext:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")
    try:
        claims = read_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return AuthContext(user_id=claims.user_id, email=claims.email)


def ensure_user_scope(auth_user_id: str, supplied_user_id: Optional[str]) -> str:
    """A body or query ``userId`` must name the caller."""
    if supplied_user_id and supplied_user_id != auth_user_id:
        raise HTTPException(status_code=403, detail="userId does not match authenticated session.")
    return auth_user_id


async def ensure_user_record(db: AsyncSession, auth: AuthContext) -> User:
    """Mirror an identity-provider account locally on first authenticated use."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(id=auth.user_id, email=auth.email or f"{auth.user_id}@local.invalid")
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # created by a concurrent request
            await db.rollback()
            result = await db.execute(select(User).where(User.id == auth.user_id))
            user = result.scalar_one()
    return user
