"""
Authentication-related schemas.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from authflow.schemas.user import sanitize_name


class EmailMixin(BaseModel):
    email: EmailStr = Field(description="User email address")

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower().strip()


class RegisterRequest(EmailMixin):
    """Registration with display name, email and password."""

    name: str = Field(min_length=1, max_length=255, description="Display name")
    password: str = Field(min_length=1, max_length=128, description="Account password")

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        v = sanitize_name(v)
        if not v:
            raise ValueError("Name must not be empty")
        return v


class VerifyEmailRequest(EmailMixin):
    code: str = Field(min_length=1, max_length=32, description="Code from the verification email")


class ResendVerificationRequest(EmailMixin):
    pass


class LoginRequest(EmailMixin):
    """Login request with email and password."""

    password: str = Field(min_length=1, max_length=128, description="User password")


class LoginResponse(BaseModel):
    """Login response with tokens."""

    access_token: str = Field(description="JWT access token")
    refresh_token: str = Field(description="JWT refresh token for token renewal")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(description="Access token expiration in seconds")


class TokenRefreshRequest(BaseModel):
    """Request to refresh access token."""

    refresh_token: Optional[str] = Field(default=None, description="Current refresh token")


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = Field(
        default=None,
        description="Refresh token to revoke along with the access token",
    )


class ForgotPasswordRequest(EmailMixin):
    pass


class ResetPasswordRequest(EmailMixin):
    code: str = Field(min_length=1, max_length=32, description="Code from the reset email")
    new_password: str = Field(min_length=1, max_length=128)


class MessageResponse(BaseModel):
    message: str
