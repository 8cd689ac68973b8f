# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Login, registration and logout are handled by the auth service, which sets
# the session cookie. This route only reports who the cookie belongs to.
# =============================================================================

import logging

from fastapi import APIRouter, Depends

from app.auth.dependencies import get_current_user_optional
from app.auth.models import AuthUser, MeResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=MeResponse, response_model_exclude_none=True)
async def get_current_user_info(
    user: AuthUser | None = Depends(get_current_user_optional)
) -> MeResponse:
    """
    Get the user behind the current session cookie.

    Returns {"success": false, "error": ...} instead of a 401 so the web
    client can check its session state on page load.
    """
    if user is None:
        return MeResponse(success=False, error="Not authenticated")
    return MeResponse(success=True, user=user)
