from fastapi import APIRouter

from src.speaker_api.services.speaker_mappings.service import speaker_mapping_service

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint.

    Also reports which repository currently backs speaker mappings.
    """
    return {
        "status": "ok",
        "version": "v1",
        "repository": type(speaker_mapping_service.repository).__name__,
    }
