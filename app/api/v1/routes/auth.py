"""
Authentication API routes
Registration, login, token refresh/logout and the email verification and
password reset flows. Tokens are returned in the body and set as cookies.
Reference: https://fastapi.tiangolo.com/advanced/response-cookies/
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.auth import (
    AccessTokenResponse,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
)
from app.api.v1.schemas.common import MessageResponse
from app.api.v1.schemas.user import UserResponse, UserSummary
from app.core.config import ACCESS_TOKEN_COOKIE_NAME, REFRESH_TOKEN_COOKIE_NAME, settings
from app.core.database import get_db
from app.core.dependencies import RequestContext, get_current_user, get_request_context
from app.core.errors import AuthenticationError, PerseoError
from app.core.tenant import RequestTenant
from app.models.user import User
from app.services.auth import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)

_GENERIC_EMAIL_MESSAGE = "If the account exists, an email has been sent"


def _set_auth_cookies(response: Response, access_token: str, refresh_token: Optional[str] = None) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE_NAME,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    if refresh_token is not None:
        response.set_cookie(
            REFRESH_TOKEN_COOKIE_NAME,
            refresh_token,
            max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite="lax",
            path=f"{settings.API_V1_PREFIX}/auth",
        )


def _clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE_NAME)
    response.delete_cookie(REFRESH_TOKEN_COOKIE_NAME, path=f"{settings.API_V1_PREFIX}/auth")


@router.post(
    "/register",
    response_model=UserSummary,
    summary="Register",
    description="Create an unverified member account in the tenant of the request",
    status_code=status.HTTP_201_CREATED,
)
async def register(
    data: RegisterRequest,
    tenant: RequestTenant,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> UserSummary:
    """
    Register a new account.

    The tenant comes from the X-Tenant header or the request subdomain.
    A verification email is sent; the account cannot sign in until verified.

    Raises:
        ConflictError: 409 if the email is already registered
        CapacityError: 409 if the tenant reached its user limit
    """
    user = await AuthService().register(db, data, tenant, context)
    await db.commit()
    return UserSummary.model_validate(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="Authenticate with email and password",
)
async def login(
    data: LoginRequest,
    response: Response,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate and issue an access/refresh token pair.

    Failed attempts are counted on the account and committed before the
    error is returned, so the lockout survives the failed request.

    Raises:
        AuthenticationError: 401 for unknown email, disabled account or wrong password
        AccountLockedError: 423 while the account is locked
        EmailNotVerifiedError: 403 when the password is right but the email is unverified
        AuthorizationError: 403 when the user's organization is inactive or expired
    """
    try:
        result = await AuthService().login(db, data.email, data.password, context)
    except PerseoError:
        await db.commit()
        raise
    await db.commit()

    _set_auth_cookies(response, result.access_token, result.refresh_token)
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        user=UserResponse.model_validate(result.user),
    )


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    summary="Refresh access token",
    description="Exchange a refresh token (body or cookie) for a new access token",
)
async def refresh(
    request: Request,
    response: Response,
    data: Optional[RefreshRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
) -> AccessTokenResponse:
    token = (data.refresh_token if data else None) or request.cookies.get(REFRESH_TOKEN_COOKIE_NAME)
    if not token:
        raise AuthenticationError("Refresh token is required", code="AUTH_INVALID_TOKEN")

    access_token = await AuthService().refresh(db, token)
    _set_auth_cookies(response, access_token)
    return AccessTokenResponse(
        access_token=access_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Revoke the refresh token and clear auth cookies",
)
async def logout(
    request: Request,
    response: Response,
    data: Optional[LogoutRequest] = Body(None),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    token = (data.refresh_token if data else None) or request.cookies.get(REFRESH_TOKEN_COOKIE_NAME)
    await AuthService().logout(db, token, context)
    await db.commit()
    _clear_auth_cookies(response)
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    summary="Verify email",
)
async def verify_email(
    data: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Raises:
        InvalidTokenError: 400 if the token is unknown, used or expired
    """
    user = await AuthService().verify_email(db, data.token)
    await db.commit()
    logger.info(f"Email verified for user {user.id}")
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    summary="Resend verification email",
)
async def resend_verification(
    data: EmailRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await AuthService().resend_verification(db, data.email)
    await db.commit()
    return MessageResponse(message=_GENERIC_EMAIL_MESSAGE)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request password reset",
    description="Always succeeds so the endpoint cannot be used to probe for accounts",
)
async def forgot_password(
    data: EmailRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await AuthService().forgot_password(db, data.email)
    await db.commit()
    return MessageResponse(message=_GENERIC_EMAIL_MESSAGE)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Reset password",
)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Set a new password with a reset token.

    Every refresh token of the account is revoked.

    Raises:
        InvalidTokenError: 400 if the token is unknown, used or expired
    """
    await AuthService().reset_password(db, data.token, data.new_password)
    await db.commit()
    return MessageResponse(message="Password has been reset")


@router.get(
    "/profile",
    response_model=UserResponse,
    summary="Current user",
)
async def get_profile(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
