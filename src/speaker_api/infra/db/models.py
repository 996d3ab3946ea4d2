from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from src.speaker_api.domain.models.speaker_mapping import SpeakerMapping, SpeakerSource, TranscriptionMappings


class Base(DeclarativeBase):
    pass


class TranscriptionMappingsORM(Base):
    __tablename__ = "transcription_speaker_mappings"

    transcription_id: Mapped[str] = mapped_column(String, primary_key=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    speakers: Mapped[list["SpeakerMappingORM"]] = relationship(
        back_populates="transcription",
        cascade="all, delete-orphan",
        order_by="SpeakerMappingORM.position",
    )

    @classmethod
    def from_domain(cls, record: TranscriptionMappings) -> "TranscriptionMappingsORM":
        orm = cls(transcription_id=record.transcription_id, last_updated=record.last_updated)
        orm.speakers = [
            SpeakerMappingORM(
                speaker_id=mapping.speaker_id,
                name=mapping.name,
                role=mapping.role,
                source=mapping.source.value,
                position=position,
            )
            for position, mapping in enumerate(record.mappings)
        ]
        return orm

    def to_domain(self) -> TranscriptionMappings:
        return TranscriptionMappings(
            transcription_id=self.transcription_id,
            last_updated=self.last_updated,
            mappings=[
                SpeakerMapping(
                    speaker_id=speaker.speaker_id,
                    name=speaker.name,
                    role=speaker.role,
                    transcription_id=self.transcription_id,
                    source=SpeakerSource(speaker.source),
                )
                for speaker in self.speakers
            ],
        )


class SpeakerMappingORM(Base):
    __tablename__ = "speaker_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transcription_id: Mapped[str] = mapped_column(
        String, ForeignKey("transcription_speaker_mappings.transcription_id", ondelete="CASCADE"), nullable=False
    )
    speaker_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    source: Mapped[str] = mapped_column(String, nullable=False)
    # Preserves the order in which the client submitted the mappings.
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    transcription: Mapped[TranscriptionMappingsORM] = relationship(back_populates="speakers")
