from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

import httpx

from src.speaker_session.config import Settings, settings as default_settings
from src.speaker_session.errors import MappingValidationError, SessionExpiredError, TransientNetworkError
from src.speaker_session.gateways import PersistenceGateway, SaveResult, SessionOverrideGateway
from src.speaker_session.mappings.store import SpeakerMappingStore
from src.speaker_session.mappings.validator import ValidationIssue, validate_all, validate_one
from src.speaker_session.models import SpeakerMapping
from src.speaker_session.session.manager import Clock, SessionCleared, SessionLifecycleManager, utcnow
from src.speaker_session.session.scheduler import ExpiryScheduler
from src.speaker_session.storage import SessionStorage

logger = logging.getLogger(__name__)


class SpeakerOverrideContext:
    """Everything one application instance needs to edit speaker identities.

    Construct it once at application start and pass it to the components
    that need it. It owns the session (and its audit log), the mapping
    store, the gateways and the expiry scheduler. Network calls happen
    before any local mutation, so a failed call leaves local state exactly
    as it was.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        storage: Optional[SessionStorage] = None,
        clock: Clock = utcnow,
        http_client: Optional[httpx.AsyncClient] = None,
        register_close_hook: bool = True,
    ) -> None:
        self.settings = settings or default_settings
        self.storage = storage if storage is not None else SessionStorage()
        self.session = SessionLifecycleManager(self.storage, settings=self.settings, clock=clock)
        self.mappings = SpeakerMappingStore()

        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=self.settings.api_timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self.persistence = PersistenceGateway(self._http)
        self.override_gateway = SessionOverrideGateway(self._http)
        self.scheduler = ExpiryScheduler(self.session)

        # Mapping of each speaker before this session first overrode it;
        # None when the speaker had no mapping at all.
        self._before_override: Dict[str, Optional[SpeakerMapping]] = {}
        self._pending: Set[asyncio.Task] = set()

        self.session.initialize(register_close_hook=register_close_hook)
        self._cleared_subscription = self.session.on_cleared(self._on_session_cleared)

    # Lifecycle

    async def start(self) -> None:
        self.scheduler.start()

    async def aclose(self) -> None:
        await self.scheduler.stop()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._cleared_subscription.unsubscribe()
        self.session.close()
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "SpeakerOverrideContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # Mapping workflow

    async def load(self, transcription_id: str, detected_speaker_ids: Iterable[str]) -> List[SpeakerMapping]:
        """Initialize the store with detected speakers and persisted mappings."""

        self._ensure_active()
        detected = list(detected_speaker_ids)
        existing = await self.persistence.get(transcription_id) or []
        self.mappings.initialize(transcription_id, detected, existing)
        self.session.touch()
        return self.mappings.all_mappings()

    def validate(self, speaker_id: str, name: str, role: str = "") -> List[ValidationIssue]:
        """Validate a pending edit against the other mappings, without applying it."""

        candidate = SpeakerMapping(speaker_id=speaker_id, name=name, role=role)
        others = [m for m in self.mappings.all_mappings() if m.speaker_id != speaker_id]
        return validate_one(candidate, others + [candidate])

    async def confirm_edit(self, speaker_id: str, name: str, role: Optional[str] = None) -> SpeakerMapping:
        """Apply a user's name/role for a speaker and record it as an override."""

        session_id = self._ensure_active()
        previous = self.mappings.get(speaker_id)
        effective_role = role if role is not None else (previous.role if previous else "")

        issues = self.validate(speaker_id, name, effective_role)
        if issues:
            raise MappingValidationError({speaker_id: [issue.message for issue in issues]})

        await self.override_gateway.apply_override(
            speaker_id,
            name,
            session_id,
            new_role=role,
            transcription_id=self.mappings.transcription_id,
        )
        self._ensure_same_session(session_id)

        if speaker_id not in self._before_override:
            self._before_override[speaker_id] = previous
        if previous is None:
            mapping = self.mappings.add(speaker_id, name, role)
        else:
            mapping = self.mappings.update(speaker_id, name=name, role=role)

        role_changed = previous is not None and role is not None and role != previous.role
        self.session.overrides.record_override(
            speaker_id,
            original_value=previous.name if previous else None,
            new_value=name,
            field_modified="name,role" if role_changed else "name",
        )
        return mapping  # type: ignore[return-value]

    async def revert(self, speaker_id: str) -> Optional[SpeakerMapping]:
        """Undo this session's override of a speaker. One level only."""

        session_id = self._ensure_active()
        if speaker_id not in self._before_override:
            return self.mappings.get(speaker_id)

        await self.override_gateway.revert_override(speaker_id, session_id)
        self._ensure_same_session(session_id)

        original = self._before_override.pop(speaker_id)
        if original is None:
            self.mappings.delete(speaker_id)
        elif self.mappings.get(speaker_id) is None:
            self.mappings.add(original.speaker_id, original.name, original.role)
        else:
            self.mappings.update(speaker_id, name=original.name, role=original.role)
        self.session.overrides.record_revert(speaker_id, original.name if original is not None else None)
        return self.mappings.get(speaker_id)

    def add_speaker(self, name: str = "", role: Optional[str] = None) -> SpeakerMapping:
        """Add a manually identified speaker as the next "Speaker N"."""

        self._ensure_active()
        mapping = self.mappings.add_speaker(name, role)
        self.session.touch()
        return mapping

    def remove_speaker(self, speaker_id: str) -> bool:
        self._ensure_active()
        speakers = self.mappings.speaker_ids()
        if speaker_id not in speakers:
            return False
        if len(speakers) <= 1:
            raise MappingValidationError(
                {speaker_id: ["Cannot remove the last remaining speaker. At least one speaker is required."]}
            )
        self.mappings.remove_speaker(speaker_id)
        self.session.touch()
        return True

    async def save(self) -> SaveResult:
        """Persist the current mappings; the server response replaces them."""

        session_id = self._ensure_active()
        transcription_id = self.mappings.transcription_id
        if transcription_id is None:
            raise RuntimeError("No transcription loaded")

        mappings = self.mappings.all_mappings()
        result = validate_all(mappings)
        if not result.is_valid:
            raise MappingValidationError(result.messages())

        saved = await self.persistence.save(transcription_id, mappings)
        self._ensure_same_session(session_id)
        if self.mappings.transcription_id != transcription_id:
            logger.info("Transcription changed during save of %s; leaving store untouched", transcription_id)
            return saved

        self.mappings.initialize(transcription_id, self.mappings.detected_speaker_ids, saved.mappings)
        self.session.touch()
        return saved

    # Session controls

    def extend(self, minutes: int) -> None:
        self._ensure_active()
        self.session.extend(minutes)

    async def clear(self) -> SessionCleared:
        """Wipe all session data, locally and on the server.

        The local wipe happens even when the server cannot be reached.
        """

        previous_id = self.session.session_id
        try:
            await self.override_gateway.clear_session(previous_id)
        except TransientNetworkError:
            logger.warning("Server-side clear of session %s failed; it will expire there on its own", previous_id)
        return self.session.clear(reason="user")

    # Internals

    def _ensure_active(self) -> str:
        return self.session.ensure_active()

    def _ensure_same_session(self, session_id: str) -> None:
        if self.session.session_id != session_id:
            raise SessionExpiredError("Session was cleared while the request was in flight")

    def _on_session_cleared(self, event: SessionCleared) -> None:
        self._before_override.clear()
        self.mappings.clear()
        if event.reason != "user":
            self._mirror_clear(event.previous_session_id)

    def _mirror_clear(self, session_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (e.g. interpreter shutdown); the server purges idle sessions itself.
            return
        task = loop.create_task(self._clear_remote(session_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _clear_remote(self, session_id: str) -> None:
        try:
            await self.override_gateway.clear_session(session_id)
        except Exception:
            logger.warning("Could not clear expired session %s on the server", session_id, exc_info=True)
