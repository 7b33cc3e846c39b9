"""Background sweep that deletes expired OTP challenges.

Expiry is always re-checked when a code is redeemed, so the sweep only keeps
the ledger small; nothing depends on it running on time.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from otp_auth.clock import Clock, SystemClock
from otp_auth.database.repository import OtpRepository

logger = logging.getLogger(__name__)


class OtpSweeper:
    """Periodically prunes expired rows from the OTP ledger."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float = 600,
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._interval = interval_seconds
        self._clock = clock or SystemClock()
        self._task: asyncio.Task | None = None

    async def run_once(self) -> int:
        """Delete every challenge that has expired; return how many were removed."""
        async with self._session_factory() as session:
            deleted = await OtpRepository(session).prune_expired(self._clock.now())
            await session.commit()
        if deleted:
            logger.info("Deleted %d expired OTP records", deleted)
        return deleted

    async def run_forever(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Expired OTP sweep failed")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start the sweep loop as a Task on the current event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self.run_forever())
            logger.info("OTP sweeper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("OTP sweeper stopped")
