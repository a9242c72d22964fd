"""Signed session tokens identifying the calling account.

Tokens are issued by the identity service sharing ``JWT_SECRET``; this API only
needs the subject claim, which it treats as an opaque account id.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "imaginario_session"
SESSION_AUDIENCE = "imaginario-api"


def create_session_token(user_id: str, email: Optional[str] = None, expires_hours: Optional[int] = None) -> str:
    """Sign a session token for ``user_id``. Used by the identity bridge and tests."""
    now = datetime.now(timezone.utc)
    ttl_hours = max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1)
    claims: Dict[str, Any] = {
        "sub": user_id,
        "aud": SESSION_AUDIENCE,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=ttl_hours)).timestamp()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_session_token(token: str) -> Dict[str, Any]:
    """Verify signature, audience, expiry and token type; return the claims."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=SESSION_AUDIENCE,
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if str(payload.get("type", "")).strip() != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")
    if not str(payload.get("sub", "")).strip():
        raise ValueError("Session token missing subject.")
    return payload
