"""
Pydantic schemas for API request/response validation and stored records.
"""

from authflow.schemas.auth import (
    RegisterRequest,
    VerifyEmailRequest,
    ResendVerificationRequest,
    LoginRequest,
    LoginResponse,
    TokenRefreshRequest,
    LogoutRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    MessageResponse,
)
from authflow.schemas.user import (
    UserRecord,
    UserProfile,
    ProfileUpdateRequest,
    PasswordChangeRequest,
)

__all__ = [
    # Auth
    "RegisterRequest",
    "VerifyEmailRequest",
    "ResendVerificationRequest",
    "LoginRequest",
    "LoginResponse",
    "TokenRefreshRequest",
    "LogoutRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "MessageResponse",
    # User
    "UserRecord",
    "UserProfile",
    "ProfileUpdateRequest",
    "PasswordChangeRequest",
]
