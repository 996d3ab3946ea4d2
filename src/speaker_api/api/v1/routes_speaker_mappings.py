from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Response, status

from src.speaker_api.domain.models.speaker_mapping import (
    SpeakerMapping,
    SpeakerMappingRequest,
    SpeakerMappingResponse,
)
from src.speaker_api.services.audit.service import audit_service
from src.speaker_api.services.speaker_mappings.service import MappingValidationError, speaker_mapping_service

router = APIRouter(prefix="/speaker-mappings", tags=["speaker-mappings"])


@router.post("", response_model=SpeakerMappingResponse)
async def save_speaker_mappings(payload: SpeakerMappingRequest) -> SpeakerMappingResponse:
    """Replace the stored speaker mappings of a transcription.

    Rejects an empty mapping list, duplicate speaker ids and blank names with
    400; nothing is stored in that case.
    """

    try:
        response = speaker_mapping_service.save(payload)
    except MappingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "errors": exc.errors},
        ) from exc

    audit_service.log_event(
        action="save_speaker_mappings",
        resource_type="speaker_mappings",
        resource_id=payload.transcription_id,
        extra={"mapping_count": response.mapped_speaker_count},
    )

    return response


@router.get("/{transcription_id}", response_model=List[SpeakerMapping])
async def get_speaker_mappings(transcription_id: str) -> List[SpeakerMapping]:
    record = speaker_mapping_service.get(transcription_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Speaker mappings not found")

    audit_service.log_event(
        action="get_speaker_mappings",
        resource_type="speaker_mappings",
        resource_id=transcription_id,
        extra={"mapping_count": len(record.mappings)},
    )

    return record.mappings


@router.delete("/{transcription_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_speaker_mappings(transcription_id: str) -> Response:
    if not speaker_mapping_service.delete(transcription_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Speaker mappings not found")

    audit_service.log_event(
        action="delete_speaker_mappings",
        resource_type="speaker_mappings",
        resource_id=transcription_id,
    )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
