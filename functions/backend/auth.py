"""
Bearer-token verification for routes that act on behalf of a signed-in user.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from backend.config import Settings, get_settings
from shared.errors import AuthorizationFailure

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """Returns the token of a `Bearer <token>` header, else None."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def verify_access_token(token: str, secret: str, audience: str) -> str:
    """
    Verifies an auth-provider access token and returns the user id (`sub`).

    Raises:
        AuthorizationFailure: The token is malformed, expired or unsigned.
    """
    try:
        payload = jwt.decode(
            token, secret, algorithms=[JWT_ALGORITHM], audience=audience
        )
    except JWTError as e:
        raise AuthorizationFailure("Invalid or expired session.") from e
    user_id = payload.get("sub")
    if not user_id:
        raise AuthorizationFailure("Invalid or expired session.")
    return str(user_id)


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    token = extract_token_from_header(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not settings.supabase_jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured")
        raise HTTPException(status_code=503, detail="Authentication is not configured")
    try:
        return verify_access_token(
            token, settings.supabase_jwt_secret, settings.jwt_audience
        )
    except AuthorizationFailure as e:
        raise HTTPException(status_code=401, detail=e.user_message) from e
