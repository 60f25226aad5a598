"""
Authentication API routes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.config import settings
from dietsaas.core.client_info import get_client_info
from dietsaas.core.exceptions import UnauthorizedError
from dietsaas.core.security import parse_duration
from dietsaas.database import get_session
from dietsaas.services.auth_service import AuthService
from dietsaas.services.authorization import AuthUser
from dietsaas.schemas.auth import (
    RegisterRequest, LoginRequest, RefreshRequest, ForgotPasswordRequest,
    ResetPasswordRequest, ChangePasswordRequest, UpdateProfileRequest
)
from dietsaas.schemas.common import ERROR_RESPONSES, error_body, success_response, message_response
from dietsaas.api.deps import (
    REFRESH_TOKEN_COOKIE,
    EndpointGuard,
    RateLimit,
    RequestContext,
    clear_auth_cookies,
    get_current_user,
    set_auth_cookies,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], responses=ERROR_RESPONSES)

HOUR = 60 * 60
MINUTE = 60


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RateLimit("register", 3, HOUR))]
)
async def register(
    data: RegisterRequest,
    request: Request,
    session: AsyncSession = Depends(get_session)
):
    """Register a clinic with its owner account."""
    auth_service = AuthService(session)
    # In DEV_MODE, also includes _dev_verification_token for testing
    result = await auth_service.register(data, get_client_info(request))
    return success_response(result)


@router.post("/login", dependencies=[Depends(RateLimit("login", 10, MINUTE))])
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_session)
):
    """Login; tokens are returned in the body and set as http-only cookies."""
    auth_service = AuthService(session)
    result = await auth_service.login(data, get_client_info(request))

    set_auth_cookies(
        response,
        result["access_token"],
        result["refresh_token"],
        result.pop("cookie_max_age"),
    )
    return success_response(result)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_session)
):
    """
    Invalidate the caller's current session.
    Needs a valid access token; cookies are cleared on every path.
    """
    try:
        current_user = await get_current_user(request, session)
    except UnauthorizedError as exc:
        rejected = JSONResponse(status_code=exc.status_code, content=error_body(exc.message))
        clear_auth_cookies(rejected)
        return rejected

    clear_auth_cookies(response)
    try:
        await AuthService(session).logout(current_user.id, request.cookies.get(REFRESH_TOKEN_COOKIE))
    except Exception:
        logger.exception("Session invalidation failed during logout")
    return message_response("Logged out successfully")


@router.delete("/logout/all")
async def logout_all(
    request: Request,
    response: Response,
    current_user: AuthUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Logout from all devices."""
    clear_auth_cookies(response)
    count = await AuthService(session).logout_all(current_user.id, get_client_info(request))
    return message_response(f"Logged out from {count} devices", sessions_invalidated=count)


@router.post("/refresh")
async def refresh_token(
    request: Request,
    response: Response,
    data: Optional[RefreshRequest] = Body(None),
    session: AsyncSession = Depends(get_session)
):
    """Get new access token; the refresh token comes from the cookie, else the body."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE) or (data.refresh_token if data else None)
    access_token = await AuthService(session).refresh(token)

    set_auth_cookies(
        response,
        access_token,
        None,
        int(parse_duration(settings.COOKIE_MAX_AGE).total_seconds()),
    )
    return success_response({"access_token": access_token})


@router.post("/forgot-password", dependencies=[Depends(RateLimit("forgot-password", 3, HOUR))])
async def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_session)
):
    """Request password reset."""
    result = await AuthService(session).forgot_password(data.email, get_client_info(request))
    return success_response(result)


@router.post("/reset-password")
async def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    session: AsyncSession = Depends(get_session)
):
    """Reset password using token."""
    await AuthService(session).reset_password(data.token, data.password, get_client_info(request))
    return message_response("Password reset successfully. You can now log in with your new password.")


@router.get("/reset-password/verify")
async def verify_reset_token(
    token: Optional[str] = None,
    session: AsyncSession = Depends(get_session)
):
    result = await AuthService(session).verify_reset_token(token)
    return success_response(result)


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    request: Request,
    current_user: AuthUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Change password; every other session is signed out."""
    await AuthService(session).change_password(
        current_user.id,
        data,
        current_refresh_token=request.cookies.get(REFRESH_TOKEN_COOKIE),
        client=get_client_info(request),
    )
    return message_response("Password changed successfully")


@router.get("/verify-email")
async def verify_email(
    token: Optional[str] = None,
    session: AsyncSession = Depends(get_session)
):
    """Verify email using token."""
    await AuthService(session).verify_email(token)
    return message_response("Email verified successfully")


@router.post("/verify-email/send")
async def send_verification_email(
    context: RequestContext = Depends(EndpointGuard(rate_limit=("verify-email", 3, HOUR))),
    session: AsyncSession = Depends(get_session)
):
    """Send a fresh verification link to the current user."""
    result = await AuthService(session).send_verification(context.user.id)
    return success_response(result)


@router.get("/me")
async def get_me(
    current_user: AuthUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Profile, organization usage and active session count."""
    result = await AuthService(session).get_me(current_user.id)
    return success_response(result)


@router.patch("/me")
async def update_me(
    changes: UpdateProfileRequest,
    current_user: AuthUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Partial profile update; fields left out are untouched."""
    user = await AuthService(session).update_profile(current_user.id, changes)
    return success_response({"user": user})
