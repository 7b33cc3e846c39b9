"""Tests for the expired-OTP sweeper."""

import asyncio
from datetime import timedelta

import pytest

from otp_auth.database.repository import OtpRepository
from otp_auth.services.cleanup import OtpSweeper


@pytest.mark.asyncio
async def test_run_once_deletes_only_expired(session_factory, clock):
    now = clock.now()
    async with session_factory() as session:
        repo = OtpRepository(session)
        await repo.create("+201234567890", "old", now - timedelta(minutes=20), timedelta(minutes=5), timedelta(minutes=1))
        await repo.create("+201001234567", "fresh", now, timedelta(minutes=5), timedelta(minutes=1))
        await session.commit()

    sweeper = OtpSweeper(session_factory, clock=clock)
    assert await sweeper.run_once() == 1
    assert await sweeper.run_once() == 0

    async with session_factory() as session:
        repo = OtpRepository(session)
        assert await repo.latest("+201234567890") is None
        assert await repo.latest("+201001234567") is not None


@pytest.mark.asyncio
async def test_start_and_stop(session_factory, clock):
    sweeper = OtpSweeper(session_factory, interval_seconds=0.01, clock=clock)
    sweeper.start()
    await asyncio.sleep(0.05)
    await sweeper.stop()
    await sweeper.stop()


@pytest.mark.asyncio
async def test_sweep_keeps_running_after_an_error(session_factory, clock, monkeypatch):
    sweeper = OtpSweeper(session_factory, interval_seconds=0.01, clock=clock)
    calls = 0

    async def flaky_run_once():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("sweep hiccup")
        return 0

    monkeypatch.setattr(sweeper, "run_once", flaky_run_once)
    sweeper.start()
    await asyncio.sleep(0.05)
    await sweeper.stop()

    assert calls >= 2
