from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import Field

from src.speaker_api.domain.models.speaker_mapping import CamelModel, SpeakerMapping


class OverrideActionType(str, Enum):
    OVERRIDE = "Override"
    REVERT = "Revert"
    CLEAR = "Clear"


class SessionOverrideAction(CamelModel):
    action: OverrideActionType
    # Values are stored as "name|role" so a single slot captures both fields.
    original_value: Optional[str] = None
    new_value: Optional[str] = None
    timestamp: datetime
    field_modified: str = "Name,Role"


class SessionOverrideTracker(CamelModel):
    """Server-side mirror of one anonymous session's override activity.

    ``actions`` holds a single slot per speaker (last action wins) and
    ``originals`` keeps the pre-override mapping for each currently overridden
    speaker so a revert can restore it.
    """

    session_id: str
    transcription_id: str
    session_started: datetime
    last_activity: datetime
    actions: Dict[str, SessionOverrideAction] = Field(default_factory=dict)
    originals: Dict[str, SpeakerMapping] = Field(default_factory=dict)
