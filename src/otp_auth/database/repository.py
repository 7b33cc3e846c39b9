"""Repositories — data access layer for users, OTP challenges and attempt counters."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.models.otp import AttemptCounter, AttemptScope, OtpChallenge
from otp_auth.models.user import User

# Dialects with an ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` construct
_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class UserRepository:
    """Encapsulates all database queries related to users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_mobile(self, mobile: str) -> User | None:
        """Look up a user by their canonical mobile number.

        The mobile is expected in E.164 format (e.g. ``+201234567890``).
        """
        stmt = select(User).where(User.mobile == mobile)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        """Stage *user* and flush so unique-index violations surface here."""
        self._session.add(user)
        await self._session.flush()
        return user

    async def mark_verified(self, user_id: uuid.UUID) -> None:
        stmt = update(User).where(User.id == user_id).values(is_verified=True)
        await self._session.execute(stmt)

    async def set_password_hash(self, user_id: uuid.UUID, password_hash: str) -> None:
        stmt = update(User).where(User.id == user_id).values(password_hash=password_hash)
        await self._session.execute(stmt)


class OtpRepository:
    """Append-only ledger of OTP challenges keyed by canonical mobile."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        mobile: str,
        code_hash: str,
        now: datetime,
        ttl: timedelta,
        resend_lock: timedelta,
    ) -> OtpChallenge:
        challenge = OtpChallenge(
            mobile=mobile,
            code_hash=code_hash,
            expires_at=now + ttl,
            resend_allowed_at=now + resend_lock,
            created_at=now,
        )
        self._session.add(challenge)
        await self._session.flush()
        return challenge

    async def latest(self, mobile: str) -> OtpChallenge | None:
        """Return the operative (most recently created) challenge for *mobile*."""
        stmt = (
            select(OtpChallenge)
            .where(OtpChallenge.mobile == mobile)
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def consume(self, challenge: OtpChallenge) -> bool:
        """Delete *challenge*; ``False`` means another request already consumed it."""
        stmt = delete(OtpChallenge).where(OtpChallenge.id == challenge.id)
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def clear(self, mobile: str) -> int:
        """Void every challenge for *mobile*."""
        stmt = delete(OtpChallenge).where(OtpChallenge.mobile == mobile)
        result = await self._session.execute(stmt)
        return result.rowcount

    async def prune_expired(self, now: datetime, mobile: str | None = None) -> int:
        """Delete challenges that expired before *now*, optionally for one mobile."""
        stmt = delete(OtpChallenge).where(OtpChallenge.expires_at < now)
        if mobile is not None:
            stmt = stmt.where(OtpChallenge.mobile == mobile)
        result = await self._session.execute(stmt)
        return result.rowcount


class AttemptRepository:
    """Failed-attempt counters and lockout windows, one per identifier and scope."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, identifier: str, scope: AttemptScope) -> AttemptCounter | None:
        stmt = (
            select(AttemptCounter)
            .where(
                AttemptCounter.identifier == identifier,
                AttemptCounter.scope == scope.value,
            )
            .with_for_update()
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def register_failure(
        self,
        identifier: str,
        scope: AttemptScope,
        now: datetime,
        max_attempts: int,
        block_for: timedelta,
    ) -> tuple[int, datetime | None]:
        """Count one failure and start a lockout once *max_attempts* is reached.

        The increment happens inside a single upsert statement so that
        concurrent failures for the same identifier are never under-counted.
        Returns the new attempt count and the lockout end, if one was set.
        """
        attempts = await self._increment(identifier, scope, now)
        if attempts < max_attempts:
            return attempts, None

        blocked_until = now + block_for
        stmt = (
            update(AttemptCounter)
            .where(
                AttemptCounter.identifier == identifier,
                AttemptCounter.scope == scope.value,
            )
            .values(blocked_until=blocked_until)
        )
        await self._session.execute(stmt)
        return attempts, blocked_until

    async def reset(self, identifier: str, scope: AttemptScope, now: datetime) -> bool:
        """Zero the counter for a successful attempt unless a lockout is active at *now*.

        The check and the reset are one conditional upsert, so a success that
        races a lockout committed by a concurrent failure is refused. Returns
        ``False`` when the lockout won and nothing was reset.
        """
        insert = self._upsert_insert()
        stmt = insert(AttemptCounter).values(
            identifier=identifier,
            scope=scope.value,
            attempts=0,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["identifier", "scope"],
            set_={"attempts": 0, "blocked_until": None, "updated_at": now},
            where=or_(
                AttemptCounter.blocked_until.is_(None),
                AttemptCounter.blocked_until <= now,
            ),
        ).returning(AttemptCounter.id)
        result = await self._session.execute(stmt)
        return result.first() is not None

    def _upsert_insert(self):
        dialect = self._session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"attempt counters need an upsert-capable dialect, got {dialect!r}")
        return insert

    async def _increment(self, identifier: str, scope: AttemptScope, now: datetime) -> int:
        insert = self._upsert_insert()
        stmt = insert(AttemptCounter).values(
            identifier=identifier,
            scope=scope.value,
            attempts=1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["identifier", "scope"],
            set_={"attempts": AttemptCounter.attempts + 1, "updated_at": now},
        ).returning(AttemptCounter.attempts)
        result = await self._session.execute(stmt)
        return result.scalar_one()
