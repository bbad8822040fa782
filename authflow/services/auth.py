"""
Authentication lifecycle.

Per-account states::

    Unregistered -> PendingVerification -> Verified
    Verified -> PasswordResetPending -> Verified

Every transition is one compare-and-set write to the credential store that
applies the new state and clears the code that authorised it together, so a
failed operation never leaves a half-applied record behind. The
`last_login` timestamp is bookkeeping and is written without that check.
"""

import logging
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from authflow.auth.codes import CodeCheck, CodeGenerator
from authflow.auth.jwt import ACCESS, REFRESH, TokenIssuer, TokenPair, TokenPayload
from authflow.auth.password import SecretHasher, validate_password_strength
from authflow.core.clock import Clock, SystemClock
from authflow.core.config import Settings
from authflow.core.errors import (
    CodeExpired,
    CodeMismatch,
    DuplicateEmail,
    ExpiredToken,
    InvalidCredentials,
    InvalidSignature,
    NotFound,
    NotVerified,
    TokenRevoked,
    ValidationError,
    WriteConflict,
)
from authflow.schemas.user import UserRecord, sanitize_name
from authflow.services.mail import EmailSender, reset_message, verification_message
from authflow.services.revocation import RevocationStore
from authflow.services.users import UserStore, normalize_email

logger = logging.getLogger(__name__)


def _minutes(delta) -> int:
    return max(1, int(delta.total_seconds() // 60))


class AuthService:
    """Registration, verification, login, refresh, reset, logout and profile."""

    def __init__(
        self,
        settings: Settings,
        store: UserStore,
        hasher: SecretHasher,
        tokens: TokenIssuer,
        codes: CodeGenerator,
        mailer: EmailSender,
        clock: Optional[Clock] = None,
        revocations: Optional[RevocationStore] = None,
    ):
        self.settings = settings
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.codes = codes
        self.mailer = mailer
        self.clock = clock or SystemClock()
        self.revocations = revocations

    # ------------------------------------------------------------------
    # Input validation
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_email(email: str) -> str:
        try:
            validate_email((email or "").strip(), check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email address: {e}") from e
        return normalize_email(email)

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = sanitize_name(name or "")
        if not cleaned:
            raise ValidationError("Name must not be empty")
        if len(cleaned) > 255:
            raise ValidationError("Name must be at most 255 characters long")
        return cleaned

    def _check_new_password(self, password: str) -> None:
        issues = validate_password_strength(password or "", self.settings.min_password_length)
        if issues:
            raise ValidationError("; ".join(issues))

    @staticmethod
    def _require_code(code: str) -> str:
        code = (code or "").strip()
        if not code:
            raise ValidationError("Code must not be empty")
        return code

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    async def _send(self, to: str, subject: str, body: str) -> None:
        # The record is already committed; a failed send is recoverable
        # through resend_verification / forgot_password.
        try:
            await self.mailer.send(to, subject, body)
        except Exception:
            logger.exception("Failed to send '%s' email", subject)

    async def _send_verification(self, user: UserRecord, code: str) -> None:
        subject, body = verification_message(
            user.name,
            code,
            self.settings.client_url,
            _minutes(self.settings.verification_code_expiry),
        )
        await self._send(user.email, subject, body)

    async def _discard_expired_code(self, user: UserRecord, digest_field: str) -> None:
        """
        Drop the digest of an expired code.

        The expiry stays stored so later checks keep reporting CodeExpired
        until a new code is issued.
        """
        if getattr(user, digest_field) is None:
            return
        try:
            await self.store.update_by_id(user.id, user.version, **{digest_field: None})
        except (WriteConflict, NotFound):
            # The record changed since it was read
            logger.debug("Skipped clearing expired %s for user %s", digest_field, user.id)

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    async def register(self, name: str, email: str, password: str) -> UserRecord:
        """
        Create an unverified account and mail it a verification code.

        Raises:
            ValidationError: Malformed name, email or weak password
            DuplicateEmail: Email already registered
        """
        name = self._clean_name(name)
        email = self._clean_email(email)
        self._check_new_password(password)

        if await self.store.find_by_email(email) is not None:
            raise DuplicateEmail()

        password_hash = self.hasher.hash(password)
        issued = self.codes.issue(self.settings.verification_code_expiry)

        user = await self.store.create(
            name=name,
            email=email,
            password_hash=password_hash,
            is_verified=False,
            verification_code_hash=self.codes.digest(issued.code),
            verification_code_expires=issued.expires_at,
        )
        logger.info("Registered user %s", user.id)

        await self._send_verification(user, issued.code)
        return user

    async def resend_verification(self, email: str) -> None:
        """Issue a fresh verification code. Responds the same for any email."""
        email = self._clean_email(email)
        user = await self.store.find_by_email(email)
        if user is None or user.is_verified:
            return

        issued = self.codes.issue(self.settings.verification_code_expiry)
        user = await self.store.update_by_id(
            user.id,
            user.version,
            verification_code_hash=self.codes.digest(issued.code),
            verification_code_expires=issued.expires_at,
        )
        logger.info("Reissued verification code for user %s", user.id)
        await self._send_verification(user, issued.code)

    async def verify_email(self, email: str, code: str) -> UserRecord:
        """
        Consume a verification code and mark the account verified.

        Raises:
            NotFound: No account with that email
            CodeExpired: Code was correct or not, but past its expiry
            CodeMismatch: Wrong code, or no code outstanding
        """
        email = self._clean_email(email)
        code = self._require_code(code)

        user = await self.store.find_by_email(email)
        if user is None:
            raise NotFound()

        result = self.codes.check(
            user.verification_code_hash,
            user.verification_code_expires,
            code,
            self.clock.now(),
        )
        if result is CodeCheck.EXPIRED:
            logger.info("Expired verification code for user %s", user.id)
            await self._discard_expired_code(user, "verification_code_hash")
            raise CodeExpired("Verification code has expired")
        if result is CodeCheck.MISMATCH:
            logger.warning("Verification code mismatch for user %s", user.id)
            raise CodeMismatch("Verification code is invalid")

        user = await self.store.update_by_id(
            user.id,
            user.version,
            is_verified=True,
            verification_code_hash=None,
            verification_code_expires=None,
        )
        logger.info("Verified email for user %s", user.id)
        return user

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> TokenPair:
        """
        Check credentials and issue an access/refresh token pair.

        Raises:
            InvalidCredentials: Unknown email or wrong password
            NotVerified: Account exists but has not verified its email
        """
        email = self._clean_email(email)
        if not password:
            raise ValidationError("Password must not be empty")

        user = await self.store.find_by_email(email)
        if user is None:
            self.hasher.dummy_verify(password)
            logger.warning("Login failed: unknown account")
            raise InvalidCredentials()

        password_ok = self.hasher.verify(password, user.password_hash)

        if not user.is_verified:
            logger.info("Login refused for unverified user %s", user.id)
            raise NotVerified()

        if not password_ok:
            logger.warning("Login failed for user %s: invalid password", user.id)
            raise InvalidCredentials()

        if self.hasher.needs_rehash(user.password_hash):
            try:
                await self.store.update_by_id(
                    user.id, user.version, password_hash=self.hasher.rehash(password)
                )
            except WriteConflict:
                # A concurrent write won; the upgrade is retried on a later login
                logger.info("Skipped hash upgrade for user %s after write conflict", user.id)
        await self.store.record_login(user.id, self.clock.now())

        logger.info("User %s logged in", user.id)
        return self.tokens.issue_pair(user.id)

    async def _check_not_revoked(self, payload: TokenPayload) -> None:
        if self.revocations is not None and await self.revocations.is_revoked(payload.jti):
            raise TokenRevoked()

    async def _revoke(self, payload: TokenPayload) -> bool:
        return await self.revocations.revoke(
            payload.jti, payload.sub, payload.type, payload.exp
        )

    async def authenticate(self, access_token: str) -> UserRecord:
        """Resolve an access token to its (still existing) user."""
        payload = self.tokens.verify(access_token, ACCESS)
        await self._check_not_revoked(payload)

        user = await self.store.find_by_id(payload.sub)
        if user is None:
            raise InvalidCredentials("User not found")
        return user

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        The presented refresh token is revoked, so each one works once.
        """
        payload = self.tokens.verify(refresh_token, REFRESH)
        await self._check_not_revoked(payload)

        user = await self.store.find_by_id(payload.sub)
        if user is None or not user.is_verified:
            raise InvalidCredentials("User not found or not verified")

        if self.revocations is not None and not await self._revoke(payload):
            # Another request rotated this token first
            logger.warning("Refresh token reuse for user %s", user.id)
            raise TokenRevoked()

        logger.info("Refreshed tokens for user %s", user.id)
        return self.tokens.issue_pair(user.id)

    async def logout(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        """
        Revoke the presented tokens.

        Without a revocation store this only validates the access token;
        the client discarding its tokens is the whole logout.
        """
        access = self.tokens.verify(access_token, ACCESS)
        await self._check_not_revoked(access)

        refresh = None
        if refresh_token:
            try:
                refresh = self.tokens.verify(refresh_token, REFRESH)
            except ExpiredToken:
                # Already unusable, nothing to revoke
                refresh = None
            if refresh is not None and refresh.sub != access.sub:
                raise InvalidSignature("Refresh token belongs to a different user")

        if self.revocations is None:
            logger.info("User %s logged out (stateless, tokens not revoked)", access.sub)
            return

        await self._revoke(access)
        if refresh is not None:
            await self._revoke(refresh)
        logger.info("User %s logged out", access.sub)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> None:
        """
        Start a password reset.

        Returns the same way whether or not the account exists; only
        verified accounts are sent a code.
        """
        email = self._clean_email(email)
        user = await self.store.find_by_email(email)
        if user is None or not user.is_verified:
            logger.info("Password reset requested for unknown or unverified account")
            return

        issued = self.codes.issue(self.settings.reset_code_expiry)
        user = await self.store.update_by_id(
            user.id,
            user.version,
            reset_code_hash=self.codes.digest(issued.code),
            reset_code_expires=issued.expires_at,
        )
        logger.info("Issued password reset code for user %s", user.id)

        subject, body = reset_message(
            user.name,
            issued.code,
            self.settings.client_url,
            _minutes(self.settings.reset_code_expiry),
        )
        await self._send(user.email, subject, body)

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        """
        Consume a reset code and set a new password.

        Outstanding refresh tokens are not revoked by a reset.

        Raises:
            ValidationError: Weak new password or malformed input
            CodeExpired: Code past its expiry
            CodeMismatch: Wrong code, no code outstanding, or unknown email
        """
        email = self._clean_email(email)
        code = self._require_code(code)
        self._check_new_password(new_password)

        user = await self.store.find_by_email(email)
        if user is None:
            raise CodeMismatch("Reset code is invalid")

        result = self.codes.check(
            user.reset_code_hash,
            user.reset_code_expires,
            code,
            self.clock.now(),
        )
        if result is CodeCheck.EXPIRED:
            await self._discard_expired_code(user, "reset_code_hash")
            raise CodeExpired("Reset code has expired")
        if result is CodeCheck.MISMATCH:
            logger.warning("Reset code mismatch for user %s", user.id)
            raise CodeMismatch("Reset code is invalid")

        await self.store.update_by_id(
            user.id,
            user.version,
            password_hash=self.hasher.hash(new_password),
            reset_code_hash=None,
            reset_code_expires=None,
        )
        logger.info("Password reset for user %s", user.id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> UserRecord:
        user = await self.store.find_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    async def update_profile(self, user_id: str, name: str) -> UserRecord:
        name = self._clean_name(name)
        user = await self.get_profile(user_id)
        return await self.store.update_by_id(user.id, user.version, name=name)

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password of a logged-in user.

        Raises:
            InvalidCredentials: Current password is wrong
            ValidationError: New password too weak
        """
        self._check_new_password(new_password)
        user = await self.get_profile(user_id)

        if not self.hasher.verify(current_password, user.password_hash):
            logger.warning("Password change failed for user %s: wrong current password", user.id)
            raise InvalidCredentials("Current password is incorrect")

        await self.store.update_by_id(
            user.id,
            user.version,
            password_hash=self.hasher.hash(new_password),
        )
        logger.info("Password changed for user %s", user.id)
