from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from src.speaker_session.session.manager import SessionLifecycleManager

logger = logging.getLogger(__name__)


class ExpiryScheduler:
    """Runs :meth:`SessionLifecycleManager.tick` on a fixed interval.

    This is the only place expiry is enforced without a user action, so a
    failing tick is logged and the loop keeps going.
    """

    def __init__(self, manager: SessionLifecycleManager, interval_seconds: Optional[float] = None) -> None:
        self._manager = manager
        self.interval_seconds = interval_seconds if interval_seconds is not None else manager.settings.tick_interval_seconds
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start ticking on the running event loop. Idempotent."""

        if self.running:
            return self._task  # type: ignore[return-value]
        self._task = asyncio.get_running_loop().create_task(self._run(), name="session-expiry-tick")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self._manager.tick()
            except Exception:
                logger.exception("Session expiry tick failed")

    async def __aenter__(self) -> "ExpiryScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
