"""
Authentication primitives.

Provides:
- JWT access/refresh token issuing and validation
- Password hashing (Argon2id)
- One-time verification and reset codes
"""

from authflow.auth.codes import CodeCheck, CodeGenerator, IssuedCode
from authflow.auth.jwt import ACCESS, REFRESH, TokenIssuer, TokenPair, TokenPayload
from authflow.auth.password import SecretHasher, validate_password_strength

__all__ = [
    # JWT
    "ACCESS",
    "REFRESH",
    "TokenIssuer",
    "TokenPair",
    "TokenPayload",
    # Codes
    "CodeCheck",
    "CodeGenerator",
    "IssuedCode",
    # Password
    "SecretHasher",
    "validate_password_strength",
]
