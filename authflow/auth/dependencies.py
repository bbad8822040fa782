"""
FastAPI dependencies for authentication.

Provides:
- get_auth_service: the AuthService built by the app factory
- get_access_token: raw bearer token from the Authorization header
- get_current_user: validated user behind the access token
"""

from ipaddress import ip_address
from typing import Optional, Sequence

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authflow.core.config import IPNetwork
from authflow.schemas.user import UserRecord
from authflow.services.auth import AuthService

# HTTP Bearer token extractor
security = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Extract the access token from the Authorization: Bearer header."""
    token = credentials.credentials if credentials else None

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


async def get_current_user(
    token: str = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service),
) -> UserRecord:
    """
    Resolve the access token to a user.

    Token errors (expired, invalid, revoked) propagate as AuthError and are
    rendered by the application's error handler.
    """
    return await service.authenticate(token)


def get_client_ip(request: Request, trusted_proxies: Sequence[IPNetwork] = ()) -> Optional[str]:
    """
    Extract the client IP address.

    The socket peer is used unless it is one of ``trusted_proxies``; only
    then are X-Forwarded-For and X-Real-IP believed.
    """
    peer = request.client.host if request.client else None
    if not peer or not _is_trusted(peer, trusted_proxies):
        return peer

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return peer


def _is_trusted(host: str, trusted_proxies: Sequence[IPNetwork]) -> bool:
    if not trusted_proxies:
        return False
    try:
        address = ip_address(host)
    except ValueError:
        return False
    return any(address in network for network in trusted_proxies)
