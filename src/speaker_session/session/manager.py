from __future__ import annotations

import atexit
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.speaker_session.config import Settings, settings as default_settings
from src.speaker_session.errors import SessionExpiredError
from src.speaker_session.events import EventChannel, Subscription
from src.speaker_session.models import SessionRecord, SessionState, SessionStatus
from src.speaker_session.session.audit_log import OverrideAuditLog
from src.speaker_session.storage import SessionStorage, format_size

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    return f"session_{secrets.token_urlsafe(16)}"


@dataclass(frozen=True)
class SessionCleared:
    previous_session_id: str
    session_id: str
    reason: str  # "user", "expired" or "closed"


class SessionLifecycleManager:
    """Owns the identity and timing of one anonymous session.

    Elapsed time is measured from ``last_activity``. With timeout ``T``
    (plus any minutes the user added through :meth:`extend`) and warning
    window ``W`` the session is active while ``elapsed < T - W``, in warning
    while ``T - W <= elapsed < T`` and expired from ``T`` on. Expiry is only
    enforced by :meth:`enforce_expiry`, which the scheduler's :meth:`tick`
    calls; every query here is side-effect free.
    """

    def __init__(
        self,
        storage: Optional[SessionStorage] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.settings = settings or default_settings
        self.storage = storage if storage is not None else SessionStorage()
        self.storage_key = self.settings.storage_key
        self._clock = clock
        self._timeout = timedelta(minutes=self.settings.session_timeout_minutes)
        self._warning = timedelta(minutes=self.settings.session_warning_minutes)
        self._record: Optional[SessionRecord] = None
        self._close_hook_registered = False

        self.status_changed: EventChannel[SessionStatus] = EventChannel("session-status")
        self.cleared: EventChannel[SessionCleared] = EventChannel("session-cleared")
        self.overrides = OverrideAuditLog(self)

    # Lifecycle

    def initialize(self, *, register_close_hook: bool = True) -> SessionRecord:
        self._record = self._fresh_record()
        self.persist()
        if register_close_hook and not self._close_hook_registered:
            # Best effort: runs on normal interpreter exit only.
            atexit.register(self._clear_on_close)
            self._close_hook_registered = True
        logger.info("Started session %s", self._record.session_id)
        return self._record

    def close(self) -> None:
        if self._close_hook_registered:
            atexit.unregister(self._clear_on_close)
            self._close_hook_registered = False
        self.status_changed.close()
        self.cleared.close()

    def clear(self, reason: str = "user") -> SessionCleared:
        """Wipe the session record and start over with a new identity."""

        previous_id = self.record.session_id
        self.storage.remove_item(self.storage_key)
        self._record = self._fresh_record()
        self.persist()

        event = SessionCleared(previous_session_id=previous_id, session_id=self._record.session_id, reason=reason)
        logger.info("Cleared session %s (%s); new session %s", previous_id, reason, event.session_id)
        self.cleared.publish(event)
        self.notify()
        return event

    def _clear_on_close(self) -> None:
        if self._record is not None:
            self.clear(reason="closed")

    # Activity

    def now(self) -> datetime:
        return self._clock()

    def touch(self) -> None:
        self.ensure_active()
        self.record.last_activity = self.now()
        self.persist()
        self.notify()

    def extend(self, minutes: int) -> None:
        """Add ``minutes`` to the effective timeout.

        Only the extension counter grows; ``session_started`` is never
        rewritten.
        """

        if minutes <= 0:
            raise ValueError("Extension must be a positive number of minutes")
        self.ensure_active()
        self.record.extensions += minutes
        self.touch()

    # Queries

    @property
    def record(self) -> SessionRecord:
        if self._record is None:
            raise RuntimeError("Session has not been initialized")
        return self._record

    @property
    def session_id(self) -> str:
        return self.record.session_id

    @property
    def effective_timeout(self) -> timedelta:
        return self._timeout + timedelta(minutes=self.record.extensions)

    def idle_time(self) -> timedelta:
        return self.now() - self.record.last_activity

    def state(self) -> SessionState:
        idle = self.idle_time()
        timeout = self.effective_timeout
        if idle >= timeout:
            return SessionState.EXPIRED
        if idle >= timeout - self._warning:
            return SessionState.WARNING
        return SessionState.ACTIVE

    def should_warn(self) -> bool:
        return self.state() is SessionState.WARNING

    def is_expired_now(self) -> bool:
        return self.state() is SessionState.EXPIRED

    def status(self) -> SessionStatus:
        record = self.record
        now = self.now()
        state = self.state()
        remaining = self.effective_timeout - (now - record.last_activity)
        return SessionStatus(
            session_id=record.session_id,
            is_active=state is not SessionState.EXPIRED,
            state=state,
            session_duration=int((now - record.session_started).total_seconds() // 60),
            last_activity=record.last_activity,
            minutes_remaining=max(remaining.total_seconds() / 60, 0.0),
            data_size=format_size(self.storage.size_bytes(self.storage_key)),
            has_overrides=bool(record.overrides),
            override_count=len(record.overrides),
        )

    # Enforcement

    def enforce_expiry(self) -> bool:
        """Clear the session if it has expired. Returns True when it did."""

        if not self.is_expired_now():
            return False
        self.clear(reason="expired")
        return True

    def ensure_active(self) -> str:
        """Return the live session id, or wipe an expired session and raise.

        Operations that count as activity call this before changing anything.
        """

        if self.enforce_expiry():
            raise SessionExpiredError("Session expired; all overrides were cleared")
        return self.record.session_id

    def tick(self) -> SessionStatus:
        """Periodic check: enforce expiry, then publish the current status."""

        if not self.enforce_expiry():
            self.notify()
        return self.status()

    # Notification

    def subscribe(self, listener: Callable[[SessionStatus], None]) -> Subscription:
        return self.status_changed.subscribe(listener)

    def on_cleared(self, listener: Callable[[SessionCleared], None]) -> Subscription:
        return self.cleared.subscribe(listener)

    def notify(self) -> None:
        self.status_changed.publish(self.status())

    # Storage

    def persist(self) -> None:
        self.storage.set_item(self.storage_key, self.record.model_dump_json(by_alias=True))

    def _fresh_record(self) -> SessionRecord:
        now = self.now()
        return SessionRecord(session_id=generate_session_id(), session_started=now, last_activity=now)
