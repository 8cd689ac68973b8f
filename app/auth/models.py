# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data.
# =============================================================================

from typing import Optional

from pydantic import BaseModel, ConfigDict


class AuthUser(BaseModel):
    """
    Authenticated user extracted from the session cookie.

    This is the minimal user info carried by the token itself,
    without querying any user store.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    username: Optional[str] = None


class SessionTokenPayload(BaseModel):
    """
    Decoded session token payload.

    The token is an HS256 JWT signed with SECRET_KEY and stored in the
    session cookie by the auth service.
    """
    sub: str  # User ID
    username: Optional[str] = None
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp


class MeResponse(BaseModel):
    """Response of GET /api/auth/me."""
    success: bool
    user: Optional[AuthUser] = None
    error: Optional[str] = None
