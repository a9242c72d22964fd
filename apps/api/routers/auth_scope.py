"""Resolve the calling account from its session token.

Account ids are opaque subjects issued by the identity service. Every
credit-touching route depends on :func:`get_auth_context`, so a request
without a valid token never reaches the ledger.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.session_token import decode_session_token


bearer_scheme = HTTPBearer(auto_error=False, description="Session token issued by the identity service")


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: Optional[str] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthContext:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise _unauthorized("Not authenticated.")

    try:
        claims = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc

    return AuthContext(user_id=str(claims["sub"]).strip(), email=claims.get("email") or None)
