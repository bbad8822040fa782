"""
Profile endpoints for the logged-in user.
"""

from fastapi import APIRouter, Depends

from authflow.auth.dependencies import get_auth_service, get_current_user
from authflow.schemas.auth import MessageResponse
from authflow.schemas.user import (
    PasswordChangeRequest,
    ProfileUpdateRequest,
    UserProfile,
    UserRecord,
)
from authflow.services.auth import AuthService

router = APIRouter()


@router.get("/me", response_model=UserProfile)
async def get_me(current_user: UserRecord = Depends(get_current_user)):
    """Get current user's profile information."""
    return UserProfile.model_validate(current_user)


@router.patch("/me", response_model=UserProfile)
async def update_me(
    data: ProfileUpdateRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    user = await service.update_profile(current_user.id, data.name)
    return UserProfile.model_validate(user)


@router.post("/me/password", response_model=MessageResponse)
async def change_password(
    data: PasswordChangeRequest,
    current_user: UserRecord = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    """Change the current user's password."""
    await service.change_password(
        current_user.id, data.current_password, data.new_password
    )
    return MessageResponse(message="Password changed successfully")
