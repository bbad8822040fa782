"""
Revocation set for issued tokens.

Tokens stay stateless; logout and refresh rotation record the ``jti`` of
the tokens they retire, and verification consults this set. Entries are
kept until the token would have expired on its own.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authflow.core.clock import Clock, SystemClock
from authflow.core.errors import StoreUnavailable
from authflow.models.revoked_token import RevokedToken

logger = logging.getLogger(__name__)


class RevocationStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        purge_every: int = 100,
    ):
        self._session_factory = session_factory
        self.clock = clock or SystemClock()
        self.purge_every = purge_every
        self._revoked_since_purge = 0

    async def revoke(
        self,
        jti: str,
        user_id: str,
        token_type: str,
        expires_at: datetime,
    ) -> bool:
        """
        Record ``jti`` as revoked.

        Returns True only if this call added the entry. False means the
        token was already revoked, possibly by a concurrent request, so a
        caller rotating a refresh token must not issue a new one.
        """
        async with self._session_factory() as session:
            try:
                if await session.get(RevokedToken, jti) is not None:
                    return False
                session.add(RevokedToken(
                    jti=jti,
                    user_id=user_id,
                    token_type=token_type,
                    expires_at=expires_at,
                    revoked_at=self.clock.now(),
                ))
                await session.commit()
            except IntegrityError:
                # Revoked concurrently by another request
                await session.rollback()
                return False
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreUnavailable() from e

        self._revoked_since_purge += 1
        if self._revoked_since_purge >= self.purge_every:
            self._revoked_since_purge = 0
            await self.purge_expired()
        return True

    async def is_revoked(self, jti: str) -> bool:
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    select(RevokedToken.jti).where(RevokedToken.jti == jti)
                )
            except SQLAlchemyError as e:
                raise StoreUnavailable() from e
            return result.scalar_one_or_none() is not None

    async def purge_expired(self) -> int:
        """Delete entries whose tokens have expired anyway. Returns the count."""
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    delete(RevokedToken).where(RevokedToken.expires_at <= self.clock.now())
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreUnavailable() from e
        if result.rowcount:
            logger.info("Purged %d expired revocation entries", result.rowcount)
        return result.rowcount
