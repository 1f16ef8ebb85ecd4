"""Signed bearer sessions for API callers.

A session is a short-lived HS256 JWT whose subject is the user id. The email
claim, when present, is used to mirror the account locally on first use.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from jose import JWTError, jwt

from config import settings

SESSION_TOKEN_TYPE = "halalchat_session"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: Optional[str]
    expires_at: int


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, object]:
    """Return ``{"token", "expires_at"}`` for ``user_id``."""
    issued = datetime.now(timezone.utc)
    lifetime = max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1)
    expires_at = int((issued + timedelta(hours=lifetime)).timestamp())

    claims = {"sub": user_id, "type": SESSION_TOKEN_TYPE, "iat": int(issued.timestamp()), "exp": expires_at}
    if email:
        claims["email"] = email
    return {
        "token": jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM),
        "expires_at": expires_at,
    }


def read_session_token(token: str) -> SessionClaims:
    """Verify signature, expiry and token type. Raises ValueError."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if claims.get("type") != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")
    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise ValueError("Session token missing subject.")

    return SessionClaims(
        user_id=user_id,
        email=str(claims.get("email") or "").strip() or None,
        expires_at=int(claims.get("exp") or 0),
    )
