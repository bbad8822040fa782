"""
JWT token handling.

Security measures:
- Short-lived access tokens (15 min default)
- Longer-lived refresh tokens (7 days default)
- Separate signing secret per token type, so a leaked refresh secret
  cannot mint access tokens and vice versa
- Token type, issuer and audience validation
- Unique ``jti`` per token for revocation
- Expiry is checked against the injected clock
"""

import secrets
from datetime import datetime, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from authflow.core.clock import Clock, SystemClock
from authflow.core.config import Settings
from authflow.core.errors import ExpiredToken, InvalidSignature

ACCESS = "access"
REFRESH = "refresh"
TOKEN_TYPES = (ACCESS, REFRESH)


class TokenPayload(BaseModel):
    """JWT token payload structure."""
    sub: str                          # User ID (subject)
    type: str                         # "access" or "refresh"
    iat: datetime                     # Issued at
    exp: datetime                     # Expiration
    iss: str                          # Issuer
    aud: str                          # Audience
    jti: str                          # JWT ID (for token revocation)

    @property
    def user_id(self) -> str:
        return self.sub


class TokenPair(BaseModel):
    """Access and refresh token handed to the client after login."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int                   # Access token lifetime in seconds
    refresh_expires_in: int           # Refresh token lifetime in seconds


class TokenIssuer:
    """Creates and validates signed access and refresh tokens."""

    def __init__(self, settings: Settings, clock: Optional[Clock] = None):
        self.settings = settings
        self.clock = clock or SystemClock()
        self._secrets = {
            ACCESS: settings.access_secret,
            REFRESH: settings.refresh_secret,
        }
        self._lifetimes = {
            ACCESS: settings.jwt_access_expiry,
            REFRESH: settings.jwt_refresh_expiry,
        }

    def _issue(self, user_id: str, token_type: str) -> str:
        now = self.clock.now()
        payload = {
            "sub": str(user_id),
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + self._lifetimes[token_type]).timestamp()),
            "iss": self.settings.token_issuer,
            "aud": self.settings.token_audience,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(
            payload, self._secrets[token_type], algorithm=self.settings.jwt_algorithm
        )

    def issue_access_token(self, user_id: str) -> str:
        """Create a short-lived access token for ``user_id``."""
        return self._issue(user_id, ACCESS)

    def issue_refresh_token(self, user_id: str) -> str:
        """
        Create a longer-lived refresh token for ``user_id``.

        Refresh tokens are rotated on use; the presented one is revoked.
        """
        return self._issue(user_id, REFRESH)

    def issue_pair(self, user_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user_id),
            refresh_token=self.issue_refresh_token(user_id),
            expires_in=int(self._lifetimes[ACCESS].total_seconds()),
            refresh_expires_in=int(self._lifetimes[REFRESH].total_seconds()),
        )

    def verify(self, token: str, token_type: str = ACCESS) -> TokenPayload:
        """
        Verify and decode a token of the given type.

        Raises:
            InvalidSignature: Bad signature, malformed token, wrong issuer,
                audience or token type
            ExpiredToken: Signature is valid but the token has expired
        """
        if token_type not in TOKEN_TYPES:
            raise ValueError(f"Unknown token type {token_type!r}")
        if not token:
            raise InvalidSignature("Token is missing")

        try:
            payload = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.token_audience,
                issuer=self.settings.token_issuer,
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidSignature(f"Invalid token: {e}") from e

        if payload.get("type") != token_type:
            raise InvalidSignature(
                f"Invalid token type. Expected {token_type}, got {payload.get('type')}"
            )

        try:
            decoded = TokenPayload(
                sub=payload["sub"],
                type=payload["type"],
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                iss=payload["iss"],
                aud=payload["aud"],
                jti=payload["jti"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSignature("Token is missing required claims") from e

        if decoded.exp <= self.clock.now():
            raise ExpiredToken()

        return decoded
