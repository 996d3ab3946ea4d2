from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SpeakerSource(str, Enum):
    AUTO_DETECTED = "AutoDetected"
    MANUALLY_ADDED = "ManuallyAdded"


class SpeakerMapping(CamelModel):
    speaker_id: str
    name: str = ""
    role: str = ""
    transcription_id: str = ""
    source: SpeakerSource = SpeakerSource.AUTO_DETECTED

    @property
    def is_named(self) -> bool:
        return bool(self.name.strip())


class OverrideActionType(str, Enum):
    OVERRIDE = "Override"
    REVERT = "Revert"
    CLEAR = "Clear"


class OverrideAction(CamelModel):
    action: OverrideActionType
    original_value: Optional[str] = None
    new_value: Optional[str] = None
    field_modified: str = "name"
    timestamp: datetime


class SessionRecord(CamelModel):
    """Everything a session keeps in tab-scoped storage.

    Serialized as ``{sessionId, sessionStarted, lastActivity,
    sessionExtensions, overrides}``.
    """

    session_id: str
    session_started: datetime
    last_activity: datetime
    extensions: int = Field(default=0, alias="sessionExtensions")
    overrides: Dict[str, OverrideAction] = Field(default_factory=dict)


class SessionState(str, Enum):
    ACTIVE = "active"
    WARNING = "warning"
    EXPIRED = "expired"


class SessionStatus(CamelModel):
    """Projection of a session at one instant; computed, never stored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    session_id: str
    is_active: bool
    state: SessionState
    session_duration: int  # whole minutes since the session started
    last_activity: datetime
    minutes_remaining: float
    data_size: str
    has_overrides: bool
    override_count: int
