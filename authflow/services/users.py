"""
Credential store.

Persists user records and hands them out as immutable ``UserRecord``
snapshots. Writes to an existing record are compare-and-set on the
record's ``version`` so concurrent verification or reset attempts cannot
silently overwrite each other.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authflow.core.errors import DuplicateEmail, NotFound, StoreUnavailable, WriteConflict
from authflow.core.database import utcnow
from authflow.models.user import User
from authflow.schemas.user import UserRecord

logger = logging.getLogger(__name__)

# Columns callers may change through update_by_id
UPDATABLE_FIELDS = frozenset({
    "name",
    "password_hash",
    "is_verified",
    "verification_code_hash",
    "verification_code_expires",
    "reset_code_hash",
    "reset_code_expires",
    "last_login",
})


def normalize_email(email: str) -> str:
    """Strip whitespace and lower-case; uniqueness is case-insensitive."""
    return (email or "").strip().lower()


class UserStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except IntegrityError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Credential store error: %s", e)
                raise StoreUnavailable() from e

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(User).where(User.email == normalize_email(email))
            )
            user = result.scalar_one_or_none()
            return UserRecord.model_validate(user) if user else None

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        async with self._session() as session:
            user = await session.get(User, user_id)
            return UserRecord.model_validate(user) if user else None

    async def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        **fields,
    ) -> UserRecord:
        """
        Insert a new user.

        Raises:
            DuplicateEmail: If the (normalised) email is already registered
            StoreUnavailable: On any other database failure
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)}")

        user = User(
            name=name,
            email=normalize_email(email),
            password_hash=password_hash,
            **fields,
        )
        try:
            async with self._session() as session:
                session.add(user)
                await session.commit()
                await session.refresh(user)
                return UserRecord.model_validate(user)
        except IntegrityError as e:
            raise DuplicateEmail() from e

    async def update_by_id(
        self,
        user_id: str,
        expected_version: int,
        **changes,
    ) -> UserRecord:
        """
        Apply ``changes`` only if the stored version still matches.

        All changes land in a single UPDATE, so a state transition and the
        clearing of the code that authorised it commit together.

        Raises:
            NotFound: If the user no longer exists
            WriteConflict: If another writer updated the record first
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)}")

        async with self._session() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id, User.version == expected_version)
                .values(**changes, version=User.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                exists = await session.get(User, user_id)
                if exists is None:
                    raise NotFound()
                logger.warning("Write conflict on user %s (version %s)", user_id, expected_version)
                raise WriteConflict()
            await session.commit()

            user = await session.get(User, user_id, populate_existing=True)
            return UserRecord.model_validate(user)

    async def record_login(self, user_id: str, when: datetime) -> None:
        """
        Set ``last_login`` without the version check.

        Bookkeeping only: concurrent logins may each write it, and the
        version is left alone so pending code transitions are not
        invalidated by a login.
        """
        async with self._session() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(last_login=when)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFound()
            await session.commit()
