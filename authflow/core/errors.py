"""
Error taxonomy for the authentication core.

Every error carries the HTTP status it maps to at the API boundary and a
stable machine-readable ``code``. None of them are retried internally.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all authentication errors."""

    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "Authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed input, rejected before the store is touched."""

    status_code = 422
    code = "validation_error"
    default_message = "Invalid input"


class DuplicateEmail(AuthError):
    status_code = 409
    code = "duplicate_email"
    default_message = "An account with that email already exists"


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "Account not found"


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. The two are never told apart."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class NotVerified(AuthError):
    status_code = 403
    code = "not_verified"
    default_message = "Email address has not been verified"


class CodeExpired(AuthError):
    status_code = 400
    code = "code_expired"
    default_message = "Code has expired"


class CodeMismatch(AuthError):
    status_code = 400
    code = "code_mismatch"
    default_message = "Code is invalid"


class InvalidSignature(AuthError):
    """Token failed signature, format, issuer, audience or type checks."""

    status_code = 401
    code = "invalid_token"
    default_message = "Invalid token"


class ExpiredToken(AuthError):
    status_code = 401
    code = "token_expired"
    default_message = "Token has expired"


class TokenRevoked(AuthError):
    status_code = 401
    code = "token_revoked"
    default_message = "Token has been revoked"


class StoreUnavailable(AuthError):
    """The credential store could not be reached. Safe to retry."""

    status_code = 503
    code = "store_unavailable"
    default_message = "Credential store unavailable"
    retryable = True


class WriteConflict(StoreUnavailable):
    """A concurrent write changed the record first."""

    code = "write_conflict"
    default_message = "Account was modified concurrently, please retry"
