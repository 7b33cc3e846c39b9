"""Shared fixtures: in-memory database, controllable clock, recording notifier."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from otp_auth.config import AuthPolicy
from otp_auth.models import otp, user  # noqa: F401
from otp_auth.models.base import Base
from otp_auth.services.auth_service import AuthService
from otp_auth.services.tokens import TokenIssuer

JWT_SECRET = "test-jwt-secret"
OTP_SECRET = "test-otp-secret"

_CODE_RE = re.compile(r"code is: (\d+)")


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingNotifier:
    """Keeps every outgoing SMS instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, identifier: str, message: str) -> None:
        self.sent.append((identifier, message))

    def last_code(self, identifier: str) -> str:
        for to, message in reversed(self.sent):
            if to == identifier:
                return _CODE_RE.search(message).group(1)
        raise AssertionError(f"no SMS was sent to {identifier}")


def make_policy(**overrides) -> AuthPolicy:
    values = dict(
        otp_length=6,
        otp_ttl=timedelta(minutes=30),
        otp_resend_lock=timedelta(seconds=60),
        otp_max_attempts=5,
        otp_block_duration=timedelta(minutes=15),
        login_max_attempts=3,
        login_block_duration=timedelta(minutes=10),
        access_token_ttl=timedelta(hours=1),
        guest_token_ttl=timedelta(minutes=30),
        password_hash_rounds=10,
        default_region="EG",
        self_registration_types=frozenset({"patient"}),
        store_timeout=5.0,
        notify_timeout=1.0,
    )
    values.update(overrides)
    return AuthPolicy(**values)


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Database file with its own connection per session, for concurrent callers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'otp_auth.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 15, 9, 0, tzinfo=UTC))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def policy() -> AuthPolicy:
    return make_policy()


@pytest.fixture
def service(session_factory, policy, notifier, clock) -> AuthService:
    return AuthService(
        session_factory=session_factory,
        policy=policy,
        issuer=TokenIssuer(JWT_SECRET),
        notifier=notifier,
        otp_secret=OTP_SECRET,
        clock=clock,
    )
