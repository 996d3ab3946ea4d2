from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class SpeakerSource(str, Enum):
    AUTO_DETECTED = "AutoDetected"
    MANUALLY_ADDED = "ManuallyAdded"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys; snake_case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SpeakerMapping(CamelModel):
    """Association between a detected speaker label and a real name/role."""

    speaker_id: str = Field(min_length=1)  # e.g. "Speaker 1"
    name: str = ""
    role: str = ""
    transcription_id: str = ""
    source: SpeakerSource = SpeakerSource.AUTO_DETECTED


class SpeakerMappingRequest(CamelModel):
    transcription_id: str = Field(min_length=1)
    mappings: List[SpeakerMapping] = Field(default_factory=list)


class TranscriptionMappings(CamelModel):
    """All speaker mappings stored for one transcription."""

    transcription_id: str
    mappings: List[SpeakerMapping] = Field(default_factory=list)
    last_updated: datetime


class SpeakerMappingResponse(CamelModel):
    success: bool = True
    transcription_id: str
    mappings: List[SpeakerMapping] = Field(default_factory=list)
    message: Optional[str] = None
    last_updated: datetime

    @computed_field(alias="mappedSpeakerCount")  # type: ignore[misc]
    @property
    def mapped_speaker_count(self) -> int:
        return len(self.mappings)
