from __future__ import annotations

from typing import Dict, Optional

from src.speaker_api.domain.models.speaker_mapping import TranscriptionMappings
from src.speaker_api.infra.db.repositories import SpeakerMappingRepository


class InMemorySpeakerMappingRepository(SpeakerMappingRepository):
    """Process-local mapping storage used in development and tests.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._records: Dict[str, TranscriptionMappings] = {}

    def get(self, transcription_id: str) -> Optional[TranscriptionMappings]:
        record = self._records.get(transcription_id)
        if record is None:
            return None
        return record.model_copy(deep=True)

    def save(self, record: TranscriptionMappings) -> None:
        self._records[record.transcription_id] = record.model_copy(deep=True)

    def delete(self, transcription_id: str) -> bool:
        return self._records.pop(transcription_id, None) is not None


speaker_mapping_repository: SpeakerMappingRepository = InMemorySpeakerMappingRepository()
