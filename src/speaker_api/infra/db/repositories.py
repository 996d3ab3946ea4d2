from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from src.speaker_api.domain.models.speaker_mapping import TranscriptionMappings


class SpeakerMappingRepository(ABC):
    @abstractmethod
    def get(self, transcription_id: str) -> Optional[TranscriptionMappings]:
        raise NotImplementedError

    @abstractmethod
    def save(self, record: TranscriptionMappings) -> None:
        """Replace all mappings stored for ``record.transcription_id``."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, transcription_id: str) -> bool:
        raise NotImplementedError
