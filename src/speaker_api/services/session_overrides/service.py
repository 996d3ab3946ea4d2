from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from src.speaker_api.config import settings
from src.speaker_api.domain.models.session_override import (
    OverrideActionType,
    SessionOverrideAction,
    SessionOverrideTracker,
)
from src.speaker_api.domain.models.speaker_mapping import SpeakerMapping, SpeakerSource
from src.speaker_api.services.speaker_mappings.service import (
    MappingValidationError,
    SpeakerMappingService,
    speaker_mapping_service,
)

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when an operation names a session the server does not track."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _pair(mapping: SpeakerMapping) -> str:
    return f"{mapping.name}|{mapping.role}"


def baseline_mapping(transcription_id: str, speaker_id: str) -> SpeakerMapping:
    """Placeholder mapping for a speaker nobody has named yet."""

    return SpeakerMapping(
        speaker_id=speaker_id,
        name=f"Speaker {speaker_id}",
        role="Participant",
        transcription_id=transcription_id,
        source=SpeakerSource.AUTO_DETECTED,
    )


@dataclass
class OverrideOutcome:
    session_id: str
    speaker_id: str
    original_name: Optional[str]
    new_name: str
    mapping: SpeakerMapping


class InMemorySessionOverrideService:
    """Server-side mirror of the per-session override log.

    Each anonymous session gets a tracker holding one action slot per speaker
    and the pre-override mapping of every speaker it currently overrides.
    Overridden values are written through to the speaker mapping service so
    readers of a transcription see them. Trackers idle for longer than the
    session timeout are purged, together with their overrides, before every
    operation.
    """

    def __init__(
        self,
        mapping_service: Optional[SpeakerMappingService] = None,
        *,
        timeout: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._mappings = mapping_service or speaker_mapping_service
        self._timeout = timeout or timedelta(minutes=settings.session_timeout_minutes)
        self._clock = clock
        self._trackers: Dict[str, SessionOverrideTracker] = {}
        # speaker_id -> True when the session synthesized the mapping itself.
        self._synthesized: Dict[str, Dict[str, bool]] = {}
        self._mappings.on_delete(self.forget_transcription)

    def apply_override(
        self,
        *,
        session_id: str,
        speaker_id: str,
        new_name: str,
        new_role: Optional[str] = None,
        transcription_id: Optional[str] = None,
    ) -> OverrideOutcome:
        errors: Dict[str, List[str]] = {}
        if not speaker_id.strip():
            errors["speakerId"] = ["Speaker ID is required"]
        if not new_name.strip():
            errors["newName"] = ["New name is required"]
        if errors:
            raise MappingValidationError(errors)

        self.purge_expired()
        tracker = self._get_or_create(session_id, transcription_id or settings.default_override_transcription_id)
        now = self._clock()

        current = self._mappings.get_mapping(tracker.transcription_id, speaker_id)
        synthesized = current is None
        if current is None:
            current = baseline_mapping(tracker.transcription_id, speaker_id)

        # A second override of the same speaker keeps the first original.
        if speaker_id not in tracker.originals:
            tracker.originals[speaker_id] = current
            self._synthesized.setdefault(session_id, {})[speaker_id] = synthesized

        updated = current.model_copy(
            update={"name": new_name, "role": current.role if new_role is None else new_role}
        )
        tracker.actions[speaker_id] = SessionOverrideAction(
            action=OverrideActionType.OVERRIDE,
            original_value=_pair(current),
            new_value=_pair(updated),
            timestamp=now,
        )
        tracker.last_activity = now
        self._mappings.put_mapping(tracker.transcription_id, updated)

        return OverrideOutcome(
            session_id=session_id,
            speaker_id=speaker_id,
            original_name=None if synthesized else current.name,
            new_name=new_name,
            mapping=updated,
        )

    def revert_override(self, *, session_id: str, speaker_id: str) -> OverrideOutcome:
        self.purge_expired()
        tracker = self._trackers.get(session_id)
        if tracker is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        now = self._clock()
        tracker.last_activity = now
        current = self._mappings.get_mapping(tracker.transcription_id, speaker_id)
        original = tracker.originals.pop(speaker_id, None)
        self._synthesized.get(session_id, {}).pop(speaker_id, None)

        if original is None or current is None:
            # Nothing overridden by this session; report the current state.
            mapping = current or baseline_mapping(tracker.transcription_id, speaker_id)
            return OverrideOutcome(
                session_id=session_id,
                speaker_id=speaker_id,
                original_name=mapping.name,
                new_name=mapping.name,
                mapping=mapping,
            )

        tracker.actions[speaker_id] = SessionOverrideAction(
            action=OverrideActionType.REVERT,
            original_value=_pair(current),
            new_value=_pair(original),
            timestamp=now,
        )
        self._mappings.put_mapping(tracker.transcription_id, original)

        return OverrideOutcome(
            session_id=session_id,
            speaker_id=speaker_id,
            original_name=current.name,
            new_name=original.name,
            mapping=original,
        )

    def clear_session(self, session_id: str) -> bool:
        """Drop a session tracker and undo every override it still holds.

        Mappings the session synthesized are removed; mappings that existed
        before the session touched them are restored. Returns False when the
        session is unknown.
        """

        tracker = self._trackers.pop(session_id, None)
        synthesized = self._synthesized.pop(session_id, {})
        if tracker is None:
            return False

        for speaker_id, original in tracker.originals.items():
            if synthesized.get(speaker_id):
                self._mappings.remove_mapping(tracker.transcription_id, speaker_id)
            else:
                self._mappings.put_mapping(tracker.transcription_id, original)

        logger.info("Cleared session %s (%d overrides undone)", session_id, len(tracker.originals))
        return True

    def forget_transcription(self, transcription_id: str) -> List[str]:
        """Drop every tracker of a transcription whose mappings were deleted.

        Nothing is restored: the deleted mappings must stay deleted.
        """

        dropped = [sid for sid, tracker in self._trackers.items() if tracker.transcription_id == transcription_id]
        for session_id in dropped:
            del self._trackers[session_id]
            self._synthesized.pop(session_id, None)
        if dropped:
            logger.info("Dropped %d sessions of deleted transcription %s", len(dropped), transcription_id)
        return dropped

    def get_session(self, session_id: str) -> Optional[SessionOverrideTracker]:
        self.purge_expired()
        return self._trackers.get(session_id)

    def is_active(self, tracker: SessionOverrideTracker) -> bool:
        return self._clock() - tracker.last_activity < self._timeout

    def purge_expired(self) -> List[str]:
        expired = [session_id for session_id, tracker in self._trackers.items() if not self.is_active(tracker)]
        for session_id in expired:
            self.clear_session(session_id)
        if expired:
            logger.info("Purged %d expired sessions", len(expired))
        return expired

    def _get_or_create(self, session_id: str, transcription_id: str) -> SessionOverrideTracker:
        tracker = self._trackers.get(session_id)
        if tracker is None:
            now = self._clock()
            tracker = SessionOverrideTracker(
                session_id=session_id,
                transcription_id=transcription_id,
                session_started=now,
                last_activity=now,
            )
            self._trackers[session_id] = tracker
        return tracker


session_override_service = InMemorySessionOverrideService()
