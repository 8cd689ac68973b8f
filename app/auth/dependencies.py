# =============================================================================
# app/auth/dependencies.py - Session Auth Dependencies
# =============================================================================
# Resolves the current user from the session cookie.
#
# The cookie holds an HS256 JWT signed with SECRET_KEY (claims: sub,
# username, iat, exp). HTTP routes and the websocket endpoint share the same
# decoding so a browser tab authenticates both with one cookie.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request, WebSocket
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import ValidationError

from app.config import settings
from app.auth.models import AuthUser, SessionTokenPayload
from app.exceptions import AuthenticationRequiredError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_TTL = timedelta(days=7)


def create_session_token(user_id: int, username: str | None = None, ttl: timedelta = SESSION_TTL) -> str:
    """
    Sign a session token for a user.

    Args:
        user_id: Numeric user id
        username: Display name carried in the token
        ttl: Lifetime of the token

    Returns:
        str: Encoded JWT suitable for the session cookie
    """
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "username": username,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: str) -> AuthUser:
    """
    Verify a session token and return its user.

    Raises:
        AuthenticationRequiredError: If the token is expired, tampered with
            or missing claims
    """
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        payload = SessionTokenPayload.model_validate(claims)
        return AuthUser(id=int(payload.sub), username=payload.username)

    except ExpiredSignatureError:
        logger.warning("Session token has expired")
        raise AuthenticationRequiredError("Session expired")

    except (JWTError, ValidationError, ValueError) as e:
        logger.warning(f"Session token validation failed: {e}")
        raise AuthenticationRequiredError("Invalid session")


def _user_from_cookies(cookies) -> AuthUser:
    token = cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise AuthenticationRequiredError("Missing session cookie")
    return decode_session_token(token)


async def get_current_user(request: Request) -> AuthUser:
    """
    FastAPI dependency returning the authenticated user.

    Raises:
        AuthenticationRequiredError: 401 if the session cookie is missing or invalid
    """
    user = _user_from_cookies(request.cookies)
    logger.debug(f"Authenticated user: {user.id}")
    return user


async def get_current_user_optional(request: Request) -> Optional[AuthUser]:
    """Like get_current_user, but None instead of a 401."""
    try:
        return _user_from_cookies(request.cookies)
    except AuthenticationRequiredError:
        return None


def get_websocket_user(websocket: WebSocket) -> Optional[AuthUser]:
    """Resolve the user of a websocket handshake, or None if unauthenticated."""
    try:
        return _user_from_cookies(websocket.cookies)
    except AuthenticationRequiredError:
        return None
