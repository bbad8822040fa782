"""
Password hashing with Argon2id.

Argon2id is memory-hard and side-channel resistant. The stored string
encodes the variant, cost parameters and a random 16-byte salt, so two
hashes of the same password never match and older hashes keep verifying
after the parameters are raised.
"""

from typing import List, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from authflow.core.errors import ValidationError

MAX_PASSWORD_LENGTH = 128


class SecretHasher:
    """One-way transform for stored passwords."""

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
        min_length: int = 8,
    ):
        self.min_length = min_length
        self._ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )
        self._dummy_hash: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "SecretHasher":
        return cls(
            time_cost=settings.hash_time_cost,
            memory_cost=settings.hash_memory_cost,
            parallelism=settings.hash_parallelism,
            min_length=settings.min_password_length,
        )

    def hash(self, plaintext: str) -> str:
        """
        Hash a password.

        Raises:
            ValidationError: If the password is empty, too short or too long
        """
        if not plaintext:
            raise ValidationError("Password must not be empty")
        if len(plaintext) < self.min_length:
            raise ValidationError(
                f"Password must be at least {self.min_length} characters long"
            )
        if len(plaintext) > MAX_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_LENGTH} characters long"
            )
        return self._ph.hash(plaintext)

    def rehash(self, plaintext: str) -> str:
        """
        Hash an already accepted password with the current parameters.

        No length policy is applied; the password was valid when it was set
        and has just been verified against its stored hash.
        """
        return self._ph.hash(plaintext)

    def verify(self, plaintext: str, stored_hash: str) -> bool:
        """Return True if ``plaintext`` matches ``stored_hash``."""
        if not plaintext or not stored_hash:
            return False
        try:
            return self._ph.verify(stored_hash, plaintext)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError):
            # Malformed or foreign hash - treat as verification failure
            return False

    def needs_rehash(self, stored_hash: str) -> bool:
        """True if the hash was made with different parameters than ours."""
        try:
            return self._ph.check_needs_rehash(stored_hash)
        except InvalidHashError:
            return True

    def dummy_verify(self, plaintext: str) -> None:
        """Spend the same time as a real check, for accounts that don't exist."""
        if self._dummy_hash is None:
            self._dummy_hash = self._ph.hash("dummy-password-for-timing")
        self.verify(plaintext or "x", self._dummy_hash)


def validate_password_strength(password: str, min_length: int = 8) -> List[str]:
    """
    Check a new password against the minimum requirements.

    Requirements:
    - At least ``min_length`` characters, at most 128
    - At least one letter
    - At least one digit

    Returns:
        List of problems; empty when the password is acceptable
    """
    issues = []

    if len(password) < min_length:
        issues.append(f"Password must be at least {min_length} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        issues.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters long")
    if not any(c.isalpha() for c in password):
        issues.append("Password must contain at least one letter")
    if not any(c.isdigit() for c in password):
        issues.append("Password must contain at least one digit")
    if password.strip() != password:
        issues.append("Password must not start or end with whitespace")

    return issues
