from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from src.speaker_session.models import OverrideAction, OverrideActionType, SessionRecord

if TYPE_CHECKING:
    from src.speaker_session.session.manager import SessionLifecycleManager


class OverrideAuditLog:
    """Last action taken on each speaker during the current session.

    One slot per speaker: a new action replaces the previous one. This is a
    single level of auditability, not an undo history.
    """

    def __init__(self, manager: "SessionLifecycleManager") -> None:
        self._manager = manager

    def store_override(self, speaker_id: str, action: OverrideAction) -> None:
        self._manager.ensure_active()
        record = self._manager.record
        record.overrides[speaker_id] = action
        self._manager.persist()
        self._manager.touch()

    def record_override(
        self,
        speaker_id: str,
        *,
        original_value: Optional[str],
        new_value: Optional[str],
        field_modified: str = "name",
    ) -> OverrideAction:
        action = OverrideAction(
            action=OverrideActionType.OVERRIDE,
            original_value=original_value,
            new_value=new_value,
            field_modified=field_modified,
            timestamp=self._manager.now(),
        )
        self.store_override(speaker_id, action)
        return action

    def record_revert(self, speaker_id: str, restored_value: Optional[str] = None) -> Optional[OverrideAction]:
        """Record a revert of the speaker's last action.

        ``original_value`` is taken from the reverted action. ``new_value`` is
        ``restored_value``, the value the speaker actually went back to, and
        defaults to that same original value. Returns None when there is
        nothing to revert.
        """

        previous = self.get(speaker_id)
        if previous is None:
            return None
        action = OverrideAction(
            action=OverrideActionType.REVERT,
            original_value=previous.original_value,
            new_value=restored_value if restored_value is not None else previous.original_value,
            field_modified=previous.field_modified,
            timestamp=self._manager.now(),
        )
        self.store_override(speaker_id, action)
        return action

    def clear(self) -> None:
        self._manager.record.overrides.clear()
        self._manager.persist()
        self._manager.notify()

    def get_overrides(self) -> Dict[str, OverrideAction]:
        """Return every slot, read back from storage with real datetimes."""

        raw = self._manager.storage.get_item(self._manager.storage_key)
        if raw is None:
            return {}
        return SessionRecord.model_validate_json(raw).overrides

    def get(self, speaker_id: str) -> Optional[OverrideAction]:
        return self.get_overrides().get(speaker_id)

    def last_timestamp(self) -> Optional[datetime]:
        overrides = self.get_overrides()
        if not overrides:
            return None
        return max(action.timestamp for action in overrides.values())

    def __len__(self) -> int:
        return len(self._manager.record.overrides)
