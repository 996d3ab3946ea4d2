from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import Field

from src.speaker_api.domain.models.speaker_mapping import CamelModel
from src.speaker_api.services.audit.service import audit_service
from src.speaker_api.services.session_overrides.service import SessionNotFoundError, session_override_service
from src.speaker_api.services.speaker_mappings.service import MappingValidationError

router = APIRouter(prefix="", tags=["session-overrides"])


class SessionOverrideRequest(CamelModel):
    speaker_id: str = Field(min_length=1)
    new_name: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    new_role: Optional[str] = None
    transcription_id: Optional[str] = None


class SessionRevertRequest(CamelModel):
    speaker_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)


class SessionClearRequest(CamelModel):
    session_id: str = Field(min_length=1)


class SessionOverrideResponse(CamelModel):
    success: bool
    session_id: str
    speaker_id: str
    original_name: Optional[str] = None
    new_name: str


class SessionClearResponse(CamelModel):
    success: bool
    session_id: str


class SessionStatusResponse(CamelModel):
    session_id: str
    is_active: bool
    override_count: int


@router.post("/session-override", response_model=SessionOverrideResponse)
async def apply_session_override(payload: SessionOverrideRequest) -> SessionOverrideResponse:
    try:
        outcome = session_override_service.apply_override(
            session_id=payload.session_id,
            speaker_id=payload.speaker_id,
            new_name=payload.new_name,
            new_role=payload.new_role,
            transcription_id=payload.transcription_id,
        )
    except MappingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "errors": exc.errors},
        ) from exc

    audit_service.log_event(
        action="apply_session_override",
        resource_type="speaker",
        resource_id=payload.speaker_id,
        session_id=payload.session_id,
    )

    return SessionOverrideResponse(
        success=True,
        session_id=outcome.session_id,
        speaker_id=outcome.speaker_id,
        original_name=outcome.original_name,
        new_name=outcome.new_name,
    )


@router.post("/session-revert", response_model=SessionOverrideResponse)
async def revert_session_override(payload: SessionRevertRequest) -> SessionOverrideResponse:
    try:
        outcome = session_override_service.revert_override(
            session_id=payload.session_id,
            speaker_id=payload.speaker_id,
        )
    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to revert override: session {payload.session_id} not found",
        ) from exc

    audit_service.log_event(
        action="revert_session_override",
        resource_type="speaker",
        resource_id=payload.speaker_id,
        session_id=payload.session_id,
    )

    return SessionOverrideResponse(
        success=True,
        session_id=outcome.session_id,
        speaker_id=outcome.speaker_id,
        original_name=outcome.original_name,
        new_name=outcome.new_name,
    )


@router.post("/session-clear", response_model=SessionClearResponse)
async def clear_session(payload: SessionClearRequest) -> SessionClearResponse:
    """Forget everything the server holds for a session.

    Clearing an unknown or already-expired session still succeeds: the
    outcome the caller wants (no data left) holds either way.
    """

    existed = session_override_service.clear_session(payload.session_id)

    audit_service.log_event(
        action="clear_session",
        resource_type="session",
        session_id=payload.session_id,
        extra={"existed": existed},
    )

    return SessionClearResponse(success=True, session_id=payload.session_id)


@router.get("/session-status/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(session_id: str) -> SessionStatusResponse:
    tracker = session_override_service.get_session(session_id)
    if tracker is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found or expired")

    return SessionStatusResponse(
        session_id=session_id,
        is_active=session_override_service.is_active(tracker),
        override_count=len(tracker.actions),
    )
