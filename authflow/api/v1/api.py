"""
API Router configuration.

Aggregates all v1 API endpoints with proper tagging and prefixes.
"""

from fastapi import APIRouter

from authflow.api.v1.endpoints import auth, users

api_router = APIRouter()

# Authentication (no token required except for logout)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# Profile of the logged-in user
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)
