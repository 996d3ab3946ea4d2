from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("audit")

# Keys whose values identify a person. They are dropped from ``extra``.
PERSONAL_KEYS = frozenset({"name", "role", "new_name", "new_role", "original_name", "original_value", "new_value"})


@dataclass
class AuditEvent:
    """One audited API action.

    Speaker names and roles are personal data: an event carries action
    names, identifiers and counts, nothing a person could be recognized by.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    session_id: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _redact(extra: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not extra:
        return extra
    return {key: value for key, value in extra.items() if key not in PERSONAL_KEYS}


class AuditService:
    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        session_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Write a JSON audit line to the ``audit`` logger and return the event.

        - `action`: what happened, e.g. "save_speaker_mappings".
        - `resource_type`: "speaker_mappings", "speaker" or "session".
        - `resource_id`: transcription or speaker id.
        - `session_id`: anonymous session token, for session override actions.
        - `extra`: small non-personal metadata such as counts or flags.
        """

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            session_id=session_id,
            extra=_redact(extra),
        )

        payload = asdict(event)
        try:
            line = json.dumps(payload)
        except TypeError:
            # Something in extra does not serialize.
            payload["extra"] = None
            line = json.dumps(payload)
        logger.info(line)

        return event


audit_service = AuditService()
