from __future__ import annotations

from typing import Optional

from src.speaker_api.domain.models.speaker_mapping import TranscriptionMappings
from src.speaker_api.infra.db.models import TranscriptionMappingsORM
from src.speaker_api.infra.db.repositories import SpeakerMappingRepository
from src.speaker_api.infra.db.session import SessionFactory


class SqlSpeakerMappingRepository(SpeakerMappingRepository):
    """SQL-backed SpeakerMappingRepository.

    Each save replaces the stored speaker rows of a transcription in one
    transaction, so concurrent saves resolve as last-save-wins.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, transcription_id: str) -> Optional[TranscriptionMappings]:
        session = self._session_factory()
        try:
            orm = session.get(TranscriptionMappingsORM, transcription_id)
            if orm is None:
                return None
            return orm.to_domain()
        finally:
            session.close()

    def save(self, record: TranscriptionMappings) -> None:
        session = self._session_factory()
        try:
            existing = session.get(TranscriptionMappingsORM, record.transcription_id)
            if existing is not None:
                session.delete(existing)
                session.flush()
            session.add(TranscriptionMappingsORM.from_domain(record))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def delete(self, transcription_id: str) -> bool:
        session = self._session_factory()
        try:
            existing = session.get(TranscriptionMappingsORM, transcription_id)
            if existing is None:
                return False
            session.delete(existing)
            session.commit()
            return True
        finally:
            session.close()
