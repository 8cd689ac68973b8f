# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# Session-cookie authentication shared by HTTP routes and the websocket.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   async def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

from app.auth.dependencies import (
    create_session_token,
    decode_session_token,
    get_current_user,
    get_current_user_optional,
    get_websocket_user,
)
from app.auth.models import AuthUser, MeResponse

__all__ = [
    "create_session_token",
    "decode_session_token",
    "get_current_user",
    "get_current_user_optional",
    "get_websocket_user",
    "AuthUser",
    "MeResponse",
]
