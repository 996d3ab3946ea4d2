from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from src.speaker_api.config import settings
from src.speaker_api.domain.models.speaker_mapping import (
    SpeakerMapping,
    SpeakerMappingRequest,
    SpeakerMappingResponse,
    TranscriptionMappings,
)
from src.speaker_api.infra.db.inmemory import speaker_mapping_repository
from src.speaker_api.infra.db.repositories import SpeakerMappingRepository

logger = logging.getLogger(__name__)


class MappingValidationError(ValueError):
    """Raised when a mapping payload cannot be stored.

    ``errors`` maps a field path (e.g. "mappings", "mappings[1].name") to
    human-readable messages.
    """

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        self.errors = errors
        super().__init__("; ".join(msg for messages in errors.values() for msg in messages))


class SpeakerMappingService:
    """Durable, per-transcription speaker mapping storage.

    A save replaces everything stored for the transcription. There is no
    version stamp, so two clients saving the same transcription resolve as
    last-save-wins.
    """

    def __init__(self, repository: Optional[SpeakerMappingRepository] = None) -> None:
        self._repository = repository or speaker_mapping_repository
        self._delete_listeners: List[Callable[[str], None]] = []

    @property
    def repository(self) -> SpeakerMappingRepository:
        return self._repository

    def use_repository(self, repository: SpeakerMappingRepository) -> None:
        self._repository = repository

    def on_delete(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(transcription_id)`` after every successful delete."""

        self._delete_listeners.append(listener)

    def validate_request(self, request: SpeakerMappingRequest) -> None:
        errors: Dict[str, List[str]] = {}

        if not request.mappings:
            errors["mappings"] = ["Mappings cannot be null or empty"]
            raise MappingValidationError(errors)

        duplicates = [speaker_id for speaker_id, count in Counter(m.speaker_id for m in request.mappings).items() if count > 1]
        if duplicates:
            errors["mappings"] = [f"Duplicate speaker IDs found: {', '.join(duplicates)}"]

        for index, mapping in enumerate(request.mappings):
            if not mapping.name.strip():
                errors.setdefault(f"mappings[{index}].name", []).append("Name is required")
            elif len(mapping.name) > settings.max_name_length:
                errors.setdefault(f"mappings[{index}].name", []).append(
                    f"Name cannot exceed {settings.max_name_length} characters"
                )
            if len(mapping.role) > settings.max_role_length:
                errors.setdefault(f"mappings[{index}].role", []).append(
                    f"Role cannot exceed {settings.max_role_length} characters"
                )

        if errors:
            raise MappingValidationError(errors)

    def save(self, request: SpeakerMappingRequest) -> SpeakerMappingResponse:
        self.validate_request(request)

        # Mappings always carry the transcription they were saved under.
        mappings = [
            mapping.model_copy(update={"transcription_id": request.transcription_id})
            for mapping in request.mappings
        ]
        record = TranscriptionMappings(
            transcription_id=request.transcription_id,
            mappings=mappings,
            last_updated=datetime.now(timezone.utc),
        )
        self._repository.save(record)
        logger.info("Saved %d speaker mappings for transcription %s", len(mappings), request.transcription_id)

        return SpeakerMappingResponse(
            success=True,
            transcription_id=record.transcription_id,
            mappings=record.mappings,
            message=f"Saved {len(mappings)} speaker mappings",
            last_updated=record.last_updated,
        )

    def get(self, transcription_id: str) -> Optional[TranscriptionMappings]:
        return self._repository.get(transcription_id)

    def get_mapping(self, transcription_id: str, speaker_id: str) -> Optional[SpeakerMapping]:
        record = self._repository.get(transcription_id)
        if record is None:
            return None
        return next((m for m in record.mappings if m.speaker_id == speaker_id), None)

    def put_mapping(self, transcription_id: str, mapping: SpeakerMapping) -> TranscriptionMappings:
        """Insert or replace a single speaker's mapping, keeping the others."""

        record = self._repository.get(transcription_id) or TranscriptionMappings(
            transcription_id=transcription_id,
            last_updated=datetime.now(timezone.utc),
        )
        mapping = mapping.model_copy(update={"transcription_id": transcription_id})
        for index, existing in enumerate(record.mappings):
            if existing.speaker_id == mapping.speaker_id:
                record.mappings[index] = mapping
                break
        else:
            record.mappings.append(mapping)
        record.last_updated = datetime.now(timezone.utc)
        self._repository.save(record)
        return record

    def remove_mapping(self, transcription_id: str, speaker_id: str) -> bool:
        """Remove one speaker; the transcription record goes when it empties."""

        record = self._repository.get(transcription_id)
        if record is None:
            return False
        remaining = [m for m in record.mappings if m.speaker_id != speaker_id]
        if len(remaining) == len(record.mappings):
            return False
        if not remaining:
            return self._repository.delete(transcription_id)
        record.mappings = remaining
        record.last_updated = datetime.now(timezone.utc)
        self._repository.save(record)
        return True

    def delete(self, transcription_id: str) -> bool:
        deleted = self._repository.delete(transcription_id)
        if deleted:
            logger.info("Deleted speaker mappings for transcription %s", transcription_id)
            for listener in self._delete_listeners:
                listener(transcription_id)
        return deleted


speaker_mapping_service = SpeakerMappingService()
