"""
SQLAlchemy models.

Import all models here so they're registered with Base.metadata
"""

from authflow.models.user import User
from authflow.models.revoked_token import RevokedToken

__all__ = [
    "User",
    "RevokedToken",
]
