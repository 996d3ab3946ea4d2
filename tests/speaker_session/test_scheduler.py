import asyncio

import pytest

from src.speaker_session.session.scheduler import ExpiryScheduler


async def test_scheduler_clears_expired_session(manager, clock):
    original_id = manager.session_id
    clock.advance(minutes=121)

    async with ExpiryScheduler(manager, interval_seconds=0.01) as scheduler:
        assert scheduler.running
        for _ in range(50):
            if manager.session_id != original_id:
                break
            await asyncio.sleep(0.01)

    assert manager.session_id != original_id
    assert scheduler.running is False


async def test_scheduler_publishes_status_while_active(manager):
    seen = []
    manager.subscribe(seen.append)
    scheduler = ExpiryScheduler(manager)
    assert scheduler.interval_seconds == 0.01

    scheduler.start()
    assert scheduler.start() is scheduler.start()
    for _ in range(50):
        if len(seen) >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()
    await scheduler.stop()

    assert len(seen) >= 2
    assert all(status.session_id == manager.session_id for status in seen)


async def test_scheduler_survives_failing_tick(manager, monkeypatch):
    calls = []

    def failing_tick():
        calls.append(1)
        raise RuntimeError("tick failed")

    monkeypatch.setattr(manager, "tick", failing_tick)
    async with ExpiryScheduler(manager, interval_seconds=0.01):
        for _ in range(50):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)
    assert len(calls) >= 2


def test_scheduler_rejects_non_positive_interval(manager):
    with pytest.raises(ValueError):
        ExpiryScheduler(manager, interval_seconds=0)
