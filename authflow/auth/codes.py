"""
One-time codes for email verification and password reset.

Codes are numeric OTPs drawn from ``secrets``. Only their SHA-256 digest
is stored; checks compare digests in constant time. The generator never
clears anything itself: the caller consumes a code by nulling it in the
same write that applies the state change.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import NamedTuple, Optional

from authflow.core.clock import Clock, SystemClock


class CodeCheck(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


class IssuedCode(NamedTuple):
    code: str
    expires_at: datetime


class CodeGenerator:
    def __init__(self, length: int = 6, clock: Optional[Clock] = None):
        if length < 4:
            raise ValueError("Codes shorter than 4 digits are too easy to guess")
        self.length = length
        self.clock = clock or SystemClock()

    def issue(self, ttl: timedelta) -> IssuedCode:
        """Generate a fresh code valid for ``ttl`` from now."""
        code = str(secrets.randbelow(10 ** self.length)).zfill(self.length)
        return IssuedCode(code=code, expires_at=self.clock.now() + ttl)

    @staticmethod
    def digest(code: str) -> str:
        return hashlib.sha256(code.encode("utf-8")).hexdigest()

    def check(
        self,
        stored_digest: Optional[str],
        stored_expiry: Optional[datetime],
        supplied_code: str,
        now: Optional[datetime] = None,
    ) -> CodeCheck:
        """
        Compare a supplied code against the stored digest.

        An expired code is reported as EXPIRED whatever was supplied, also
        after its digest has been cleared. No stored code at all is a
        MISMATCH.
        """
        if stored_expiry is None:
            return CodeCheck.MISMATCH

        now = now or self.clock.now()
        if now >= stored_expiry:
            return CodeCheck.EXPIRED
        if not stored_digest:
            return CodeCheck.MISMATCH

        supplied = (supplied_code or "").strip()
        if secrets.compare_digest(self.digest(supplied), stored_digest):
            return CodeCheck.VALID
        return CodeCheck.MISMATCH
