"""
User-related schemas.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def sanitize_name(v: str) -> str:
    # Remove characters that have no business in a display name
    v = re.sub(r'[<>"\';\\]', '', v)
    return v.strip()


class UserRecord(BaseModel):
    """
    Snapshot of a stored user row.

    Returned by the credential store; changes go back through
    ``UserStore.update_by_id`` with the ``version`` seen here.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    email: str
    password_hash: str
    is_verified: bool = False
    verification_code_hash: Optional[str] = None
    verification_code_expires: Optional[datetime] = None
    reset_code_hash: Optional[str] = None
    reset_code_expires: Optional[datetime] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UserProfile(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    is_verified: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class ProfileUpdateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255, description="New display name")

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        v = sanitize_name(v)
        if not v:
            raise ValueError("Name must not be empty")
        return v


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)
