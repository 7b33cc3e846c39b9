"""Auth service — registration, OTP verification, login, password reset and guest sessions.

Flow
----
1. ``register`` stores an unverified user and texts them a 6-digit code.
2. ``verify_otp`` redeems the code, marks the user verified and returns a token.
3. ``login`` exchanges mobile + password for a token once the user is verified.
4. ``forgot`` / ``reset`` replace the password after proving control of the
   mobile with a fresh code.
5. ``resend_otp`` issues a new code once the resend lock has elapsed.

Both code verification and login sit behind their own failed-attempt
counter: reaching the threshold locks the identifier out for a while, and
the lockout is checked before any code or password comparison. A success
only clears the counter while no lockout is active, so a correct guess that
raced a concurrent lockout is still refused.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otp_auth.clock import Clock, SystemClock
from otp_auth.config import AuthPolicy
from otp_auth.database.repository import AttemptRepository, OtpRepository, UserRepository
from otp_auth.errors import (
    Blocked,
    Conflict,
    Expired,
    InvalidCode,
    InvalidCredentials,
    InvalidIdentifier,
    NotFound,
    NotVerified,
    PolicyViolation,
    RateLimited,
    Unavailable,
    ValidationFailed,
    seconds_until,
)
from otp_auth.models.otp import AttemptScope, OtpChallenge
from otp_auth.models.user import ROLES_BY_TYPE, User, UserType
from otp_auth.schemas import (
    GuestTokenResponse,
    MessageResponse,
    OtpSentResponse,
    RegisterResponse,
    TokenResponse,
)
from otp_auth.services.notifier import DeliveryFailed, Notifier
from otp_auth.services.phone import normalize_mobile
from otp_auth.services.security import (
    dummy_password_hash,
    generate_otp_code,
    hash_otp_code,
    hash_password,
    otp_code_matches,
    verify_password,
)
from otp_auth.services.tokens import GuestClaims, TokenIssuer, UserClaims

logger = logging.getLogger(__name__)

FORGOT_MESSAGE = "If this mobile number is registered, a verification code has been sent."


class AuthService:
    """Orchestrates the identity store, OTP ledger, throttle counters and token issuer."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: AuthPolicy,
        issuer: TokenIssuer,
        notifier: Notifier,
        otp_secret: str,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._policy = policy
        self._issuer = issuer
        self._notifier = notifier
        self._otp_secret = otp_secret
        self._clock = clock or SystemClock()
        self._dummy_hash = dummy_password_hash(policy.password_hash_rounds)

    # ── Registration ─────────────────────────────────────

    async def register(
        self,
        full_name: str,
        mobile: str,
        password: str,
        type: str = UserType.PATIENT.value,
        email: str | None = None,
    ) -> RegisterResponse:
        """Create an unverified account and send its first verification code."""
        if type not in self._policy.self_registration_types:
            logger.info("Registration refused for account type %r", type)
            raise PolicyViolation()
        try:
            account_type = UserType(type)
        except ValueError as exc:
            raise PolicyViolation() from exc

        canonical = self._normalize(mobile)
        email = email.strip().lower() if email else None
        now = self._clock.now()

        async with self._unit_of_work() as session:
            users = UserRepository(session)
            if await users.find_by_mobile(canonical) is not None:
                logger.info("Registration conflict on mobile %s", canonical)
                raise Conflict()
            if email and await users.find_by_email(email) is not None:
                logger.info("Registration conflict on email for mobile %s", canonical)
                raise Conflict()

            password_hash = await asyncio.to_thread(
                hash_password, password, self._policy.password_hash_rounds
            )
            user = User(
                full_name=full_name.strip(),
                mobile=canonical,
                email=email,
                password_hash=password_hash,
                type=account_type.value,
                roles=[role.value for role in ROLES_BY_TYPE[account_type]],
                is_verified=False,
            )
            try:
                await users.add(user)
                code = await self._issue_challenge(session, canonical, now)
                await session.commit()
            except IntegrityError as exc:
                # Lost a race against a concurrent registration
                await session.rollback()
                logger.info("Registration conflict (unique index) on mobile %s", canonical)
                raise Conflict() from exc

        logger.info("Registered user %s with mobile %s", user.id, canonical)
        await self._deliver_code(canonical, code)
        return RegisterResponse(
            message="Registration successful. Please verify your mobile number.",
            mobile=canonical,
        )

    # ── OTP ──────────────────────────────────────────────

    async def resend_otp(self, mobile: str) -> OtpSentResponse:
        """Issue a new code once the previous one's resend lock has elapsed."""
        canonical = self._normalize(mobile)
        now = self._clock.now()
        code = None

        async with self._unit_of_work() as session:
            latest = await OtpRepository(session).latest(canonical)
            if latest is not None and now < latest.resend_allowed_at:
                wait = seconds_until(latest.resend_allowed_at, now)
                logger.info("Resend for %s refused, %ds left on lock", canonical, wait)
                raise RateLimited(wait)

            if await UserRepository(session).find_by_mobile(canonical) is not None:
                code = await self._issue_challenge(session, canonical, now)
                await session.commit()
            else:
                logger.info("Resend requested for unknown mobile %s", canonical)

        if code is not None:
            await self._deliver_code(canonical, code)
        return OtpSentResponse(
            message="A new verification code has been sent.",
            expires_in=int(self._policy.otp_ttl.total_seconds()),
        )

    async def verify_otp(self, mobile: str, code: str) -> TokenResponse:
        """Redeem a code: mark the account verified and return an access token."""
        canonical = self._normalize(mobile)
        now = self._clock.now()

        async with self._unit_of_work() as session:
            challenge = await self._match_code(session, canonical, code, now)
            users = UserRepository(session)
            user = await users.find_by_mobile(canonical)
            if user is None:
                raise NotFound()

            await self._consume_challenge(session, challenge, now)
            await users.mark_verified(user.id)
            await session.commit()

        logger.info("User %s verified mobile %s", user.id, canonical)
        return TokenResponse(access_token=self._user_token(user, now))

    # ── Login ────────────────────────────────────────────

    async def login(self, mobile: str, password: str) -> TokenResponse:
        """Exchange mobile + password for an access token.

        The password is checked before the verified flag, so an unverified
        account only reports ``NotVerified`` to someone who knows its password.
        Unknown mobiles and wrong passwords fail identically.
        """
        try:
            canonical = self._normalize(mobile)
        except InvalidIdentifier:
            await asyncio.to_thread(verify_password, password, self._dummy_hash)
            raise InvalidCredentials() from None

        now = self._clock.now()

        async with self._unit_of_work() as session:
            attempts = AttemptRepository(session)
            counter = await attempts.get(canonical, AttemptScope.LOGIN)
            if counter is not None and counter.is_blocked(now):
                logger.info("Login for %s refused, locked until %s", canonical, counter.blocked_until)
                raise Blocked(counter.blocked_until, now)

            user = await UserRepository(session).find_by_mobile(canonical)
            stored_hash = user.password_hash if user is not None else self._dummy_hash
            password_ok = await asyncio.to_thread(verify_password, password, stored_hash)

            if user is None or not password_ok:
                await self._record_failure(
                    session,
                    canonical,
                    AttemptScope.LOGIN,
                    now,
                    self._policy.login_max_attempts,
                    self._policy.login_block_duration,
                )
                raise InvalidCredentials()

            await self._clear_failures(session, canonical, AttemptScope.LOGIN, now)
            await session.commit()

        if not user.is_verified:
            logger.info("Login for unverified user %s", user.id)
            raise NotVerified()

        logger.info("User %s logged in", user.id)
        return TokenResponse(access_token=self._user_token(user, now))

    # ── Password reset ───────────────────────────────────

    async def forgot(self, mobile: str) -> MessageResponse:
        """Send a reset code if the mobile is registered; the reply never says which."""
        try:
            canonical = self._normalize(mobile)
        except InvalidIdentifier:
            logger.info("Forgot-password request with an invalid mobile")
            return MessageResponse(message=FORGOT_MESSAGE)

        now = self._clock.now()
        code = None

        async with self._unit_of_work() as session:
            if await UserRepository(session).find_by_mobile(canonical) is None:
                logger.info("Forgot-password request for unknown mobile %s", canonical)
            else:
                latest = await OtpRepository(session).latest(canonical)
                if latest is not None and now < latest.resend_allowed_at:
                    logger.info("Forgot-password for %s within resend lock, no new code", canonical)
                else:
                    code = await self._issue_challenge(session, canonical, now)
                    await session.commit()

        if code is not None:
            await self._deliver_code(canonical, code)
        return MessageResponse(message=FORGOT_MESSAGE)

    async def reset(
        self,
        mobile: str,
        otp: str,
        new_password: str,
        new_password_confirm: str,
    ) -> MessageResponse:
        """Replace the password of the account that proves control of *mobile*."""
        if new_password != new_password_confirm:
            raise ValidationFailed("Passwords do not match")

        canonical = self._normalize(mobile)
        now = self._clock.now()

        async with self._unit_of_work() as session:
            challenge = await self._match_code(session, canonical, otp, now)
            users = UserRepository(session)
            user = await users.find_by_mobile(canonical)
            if user is None:
                raise NotFound()

            password_hash = await asyncio.to_thread(
                hash_password, new_password, self._policy.password_hash_rounds
            )
            await self._consume_challenge(session, challenge, now)
            await users.set_password_hash(user.id, password_hash)
            await session.commit()

        logger.info("Password reset for user %s", user.id)
        return MessageResponse(message="Password reset successfully")

    # ── Guest ────────────────────────────────────────────

    def guest_login(self) -> GuestTokenResponse:
        """Mint a short-lived token for an anonymous, non-persisted guest."""
        now = self._clock.now()
        token = self._issuer.issue(GuestClaims(), now, self._policy.guest_token_ttl)
        return GuestTokenResponse(access_token=token)

    # ── Private helpers ──────────────────────────────────

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """Open a session bounded by the store timeout.

        Uncommitted work is rolled back when the block exits. Timeouts and
        database errors surface as ``Unavailable``.
        """
        try:
            async with asyncio.timeout(self._policy.store_timeout):
                async with self._session_factory() as session:
                    yield session
        except TimeoutError as exc:
            logger.error("Store call exceeded %.1fs", self._policy.store_timeout)
            raise Unavailable() from exc
        except SQLAlchemyError as exc:
            logger.exception("Store call failed: %s", exc)
            raise Unavailable() from exc

    def _normalize(self, mobile: str) -> str:
        return normalize_mobile(mobile, self._policy.default_region)

    async def _issue_challenge(self, session: AsyncSession, mobile: str, now: datetime) -> str:
        """Store a new challenge for *mobile* and return its plaintext code.

        The new code always differs from the one it supersedes.
        """
        otps = OtpRepository(session)
        previous = await otps.latest(mobile)
        while True:
            code = generate_otp_code(self._policy.otp_length)
            code_hash = hash_otp_code(code, mobile, self._otp_secret)
            if previous is None or code_hash != previous.code_hash:
                break

        await otps.create(
            mobile,
            code_hash,
            now,
            self._policy.otp_ttl,
            self._policy.otp_resend_lock,
        )
        logger.info("OTP issued for %s", mobile)
        return code

    async def _match_code(
        self, session: AsyncSession, mobile: str, code: str, now: datetime
    ) -> OtpChallenge:
        """Check *code* against the operative challenge and return it on a match."""
        counter = await AttemptRepository(session).get(mobile, AttemptScope.OTP)
        if counter is not None and counter.is_blocked(now):
            logger.info("OTP check for %s refused, locked until %s", mobile, counter.blocked_until)
            raise Blocked(counter.blocked_until, now)

        otps = OtpRepository(session)
        challenge = await otps.latest(mobile)
        if challenge is None:
            raise NotFound()
        if now > challenge.expires_at:
            await otps.prune_expired(now, mobile)
            await session.commit()
            raise Expired()

        if not otp_code_matches(code, mobile, challenge.code_hash, self._otp_secret):
            await self._record_failure(
                session,
                mobile,
                AttemptScope.OTP,
                now,
                self._policy.otp_max_attempts,
                self._policy.otp_block_duration,
            )
            raise InvalidCode()
        return challenge

    async def _consume_challenge(
        self, session: AsyncSession, challenge: OtpChallenge, now: datetime
    ) -> None:
        """Make the matched code single-use and clear the OTP failure counter."""
        await self._clear_failures(session, challenge.mobile, AttemptScope.OTP, now)
        otps = OtpRepository(session)
        if not await otps.consume(challenge):
            # A concurrent request redeemed it first
            raise NotFound()
        await otps.clear(challenge.mobile)

    async def _clear_failures(
        self, session: AsyncSession, identifier: str, scope: AttemptScope, now: datetime
    ) -> None:
        """Reset the counter after a success, or raise ``Blocked`` if a lockout got there first.

        The lockout gate is read before the comparison, so a concurrent
        failure may have locked the identifier out in between.
        """
        attempts = AttemptRepository(session)
        if await attempts.reset(identifier, scope, now):
            return
        counter = await attempts.get(identifier, scope)
        logger.warning("%s success for %s refused by a concurrent lockout", scope.value, identifier)
        raise Blocked(counter.blocked_until, now)

    async def _record_failure(
        self,
        session: AsyncSession,
        identifier: str,
        scope: AttemptScope,
        now: datetime,
        max_attempts: int,
        block_for: timedelta,
    ) -> None:
        """Persist one failed attempt; raise ``Blocked`` if it triggered a lockout."""
        attempts, blocked_until = await AttemptRepository(session).register_failure(
            identifier, scope, now, max_attempts, block_for
        )
        await session.commit()
        if blocked_until is not None:
            logger.warning(
                "%s lockout for %s after %d failed attempts, until %s",
                scope.value,
                identifier,
                attempts,
                blocked_until.isoformat(),
            )
            raise Blocked(blocked_until, now)
        logger.info("%s failure %d/%d for %s", scope.value, attempts, max_attempts, identifier)

    async def _deliver_code(self, mobile: str, code: str) -> None:
        """Text *code* to *mobile*. Delivery problems are logged, never raised."""
        message = f"Your verification code is: {code}. Valid for {self._ttl_text()}."
        try:
            async with asyncio.timeout(self._policy.notify_timeout):
                await self._notifier.send(mobile, message)
        except DeliveryFailed:
            logger.exception("OTP delivery to %s failed", mobile)
        except TimeoutError:
            logger.exception("OTP delivery to %s timed out", mobile)

    def _ttl_text(self) -> str:
        seconds = int(self._policy.otp_ttl.total_seconds())
        if seconds % 60 == 0:
            minutes = seconds // 60
            return f"{minutes} minute{'s' if minutes != 1 else ''}"
        return f"{seconds} seconds"

    def _user_token(self, user: User, now: datetime) -> str:
        claims = UserClaims(
            subject=str(user.id),
            mobile=user.mobile,
            roles=tuple(user.roles),
            type=user.type,
        )
        return self._issuer.issue(claims, now, self._policy.access_token_ttl)
