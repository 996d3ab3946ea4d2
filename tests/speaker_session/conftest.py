from datetime import datetime, timedelta, timezone

import pytest

from src.speaker_session.config import Settings
from src.speaker_session.session.manager import SessionLifecycleManager
from src.speaker_session.storage import SessionStorage


class FakeClock:
    """Wall clock that only moves when a test advances it."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_settings() -> Settings:
    return Settings(
        api_base_url="http://test/api/v1",
        session_timeout_minutes=120,
        session_warning_minutes=5,
        tick_interval_seconds=0.01,
        storage_key="testSession",
    )


@pytest.fixture
def manager(clock, session_settings) -> SessionLifecycleManager:
    manager = SessionLifecycleManager(SessionStorage(), settings=session_settings, clock=clock)
    manager.initialize(register_close_hook=False)
    yield manager
    manager.close()
