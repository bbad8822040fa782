"""
Authentication endpoints.

Provides:
- Registration and email verification
- Login (email/password -> JWT tokens)
- Token refresh
- Logout
- Forgotten password / reset
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from authflow.auth.dependencies import get_access_token, get_auth_service, get_client_ip
from authflow.auth.jwt import TokenPair
from authflow.core.errors import InvalidSignature
from authflow.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenRefreshRequest,
    VerifyEmailRequest,
)
from authflow.schemas.user import UserProfile
from authflow.services.auth import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()

REFRESH_COOKIE = "refresh_token"

# Same body whether or not the account exists
RESET_REQUESTED = "If an account with that email exists, a reset code has been sent"
VERIFICATION_RESENT = "If that account is awaiting verification, a new code has been sent"


def _set_refresh_cookie(request: Request, response: Response, pair: TokenPair) -> None:
    settings = request.app.state.settings
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=pair.refresh_token,
        httponly=True,
        secure=settings.is_production(),
        samesite="lax",
        max_age=pair.refresh_expires_in,
        path="/v1/auth",
    )


def _login_response(pair: TokenPair) -> LoginResponse:
    return LoginResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/register", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Create an account and email a verification code.

    No tokens are issued until the email is verified and the user logs in.
    """
    user = await service.register(data.name, data.email, data.password)
    return UserProfile.model_validate(user)


@router.post("/verify-email", response_model=UserProfile)
async def verify_email(
    data: VerifyEmailRequest,
    service: AuthService = Depends(get_auth_service),
):
    user = await service.verify_email(data.email, data.code)
    return UserProfile.model_validate(user)


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def resend_verification(
    data: ResendVerificationRequest,
    service: AuthService = Depends(get_auth_service),
):
    await service.resend_verification(data.email)
    return MessageResponse(message=VERIFICATION_RESENT)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    data: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate user and return JWT tokens.

    Sets HttpOnly cookie for refresh token (more secure than localStorage).
    Returns both tokens in the response body as well.
    """
    settings = request.app.state.settings
    logger.debug("Login attempt from %s", get_client_ip(request, settings.trusted_proxy_networks))
    pair = await service.login(data.email, data.password)
    _set_refresh_cookie(request, response, pair)
    return _login_response(pair)


@router.post("/refresh", response_model=LoginResponse)
async def refresh_token(
    request: Request,
    response: Response,
    data: Optional[TokenRefreshRequest] = None,
    service: AuthService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new token pair.

    Accepts refresh token from:
    1. Request body (preferred for SPAs)
    2. HttpOnly cookie (for web apps)
    """
    token = data.refresh_token if data and data.refresh_token else request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise InvalidSignature("Refresh token required")

    pair = await service.refresh(token)
    _set_refresh_cookie(request, response, pair)
    return _login_response(pair)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    data: Optional[LogoutRequest] = None,
    access_token: str = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service),
):
    """Revoke the access token and, if given, the refresh token."""
    refresh = data.refresh_token if data and data.refresh_token else request.cookies.get(REFRESH_COOKIE)
    await service.logout(access_token, refresh)

    response.delete_cookie(REFRESH_COOKIE, path="/v1/auth")
    return MessageResponse(message="Successfully logged out")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def forgot_password(
    data: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    await service.forgot_password(data.email)
    return MessageResponse(message=RESET_REQUESTED)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    await service.reset_password(data.email, data.code, data.new_password)
    return MessageResponse(message="Password has been reset")
