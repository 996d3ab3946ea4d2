from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from fastapi import status

from src.speaker_api.domain.models.session_override import OverrideActionType
from src.speaker_api.domain.models.speaker_mapping import SpeakerMapping, SpeakerMappingRequest
from src.speaker_api.infra.db.inmemory import InMemorySpeakerMappingRepository
from src.speaker_api.main import app
from src.speaker_api.services.session_overrides.service import InMemorySessionOverrideService, SessionNotFoundError
from src.speaker_api.services.speaker_mappings.service import MappingValidationError, SpeakerMappingService


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _service():
    mappings = SpeakerMappingService(InMemorySpeakerMappingRepository())
    clock = _Clock()
    overrides = InMemorySessionOverrideService(mappings, timeout=timedelta(minutes=120), clock=clock)
    return mappings, overrides, clock


def test_override_creates_baseline_and_records_action():
    mappings, overrides, _ = _service()

    outcome = overrides.apply_override(session_id="s1", speaker_id="1", new_name="Alice", transcription_id="t1")

    assert outcome.original_name is None
    assert outcome.mapping.name == "Alice"
    assert outcome.mapping.role == "Participant"
    tracker = overrides.get_session("s1")
    assert tracker is not None
    action = tracker.actions["1"]
    assert action.action == OverrideActionType.OVERRIDE
    assert action.original_value == "Speaker 1|Participant"
    assert action.new_value == "Alice|Participant"
    assert mappings.get_mapping("t1", "1").name == "Alice"


def test_revert_restores_existing_mapping():
    mappings, overrides, _ = _service()
    mappings.save(
        SpeakerMappingRequest(
            transcription_id="t1",
            mappings=[SpeakerMapping(speaker_id="S1", name="Alice", role="PM")],
        )
    )

    overrides.apply_override(session_id="s1", speaker_id="S1", new_name="Alicia", transcription_id="t1")
    overrides.apply_override(session_id="s1", speaker_id="S1", new_name="Ally", transcription_id="t1")
    outcome = overrides.revert_override(session_id="s1", speaker_id="S1")

    assert outcome.mapping.name == "Alice"
    assert outcome.original_name == "Ally"
    assert mappings.get_mapping("t1", "S1").name == "Alice"
    action = overrides.get_session("s1").actions["S1"]
    assert action.action == OverrideActionType.REVERT
    assert action.original_value == "Ally|PM"
    assert action.new_value == "Alice|PM"


def test_revert_unknown_session_raises():
    _, overrides, _ = _service()
    try:
        overrides.revert_override(session_id="missing", speaker_id="S1")
    except SessionNotFoundError:
        pass
    else:
        raise AssertionError("expected SessionNotFoundError")


def test_clear_session_undoes_overrides():
    mappings, overrides, _ = _service()
    mappings.save(
        SpeakerMappingRequest(
            transcription_id="t1",
            mappings=[SpeakerMapping(speaker_id="S1", name="Alice", role="PM")],
        )
    )
    overrides.apply_override(session_id="s1", speaker_id="S1", new_name="Alicia", transcription_id="t1")
    overrides.apply_override(session_id="s1", speaker_id="S2", new_name="Bob", transcription_id="t1")

    assert overrides.clear_session("s1") is True

    record = mappings.get("t1")
    assert [(m.speaker_id, m.name) for m in record.mappings] == [("S1", "Alice")]
    assert overrides.get_session("s1") is None
    assert overrides.clear_session("s1") is False


def test_idle_sessions_are_purged():
    mappings, overrides, clock = _service()
    overrides.apply_override(session_id="s1", speaker_id="S1", new_name="Alice", transcription_id="t1")

    clock.now += timedelta(minutes=119)
    assert overrides.get_session("s1") is not None

    clock.now += timedelta(minutes=2)
    assert overrides.purge_expired() == ["s1"]
    assert mappings.get("t1") is None


async def test_session_override_endpoints_round_trip():
    session_id = f"session_{uuid4().hex}"
    transcription_id = f"tr-{uuid4()}"
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        override_resp = await ac.post(
            "/api/v1/session-override",
            json={
                "speakerId": "Speaker 1",
                "newName": "Alice",
                "sessionId": session_id,
                "transcriptionId": transcription_id,
            },
        )
        assert override_resp.status_code == status.HTTP_200_OK
        body = override_resp.json()
        assert body["success"] is True
        assert body["newName"] == "Alice"
        assert body["sessionId"] == session_id

        status_resp = await ac.get(f"/api/v1/session-status/{session_id}")
        assert status_resp.status_code == status.HTTP_200_OK
        assert status_resp.json() == {"sessionId": session_id, "isActive": True, "overrideCount": 1}

        mappings = (await ac.get(f"/api/v1/speaker-mappings/{transcription_id}")).json()
        assert mappings[0]["name"] == "Alice"

        revert_resp = await ac.post(
            "/api/v1/session-revert",
            json={"speakerId": "Speaker 1", "sessionId": session_id},
        )
        assert revert_resp.status_code == status.HTTP_200_OK
        assert revert_resp.json()["success"] is True

        clear_resp = await ac.post("/api/v1/session-clear", json={"sessionId": session_id})
        assert clear_resp.status_code == status.HTTP_200_OK
        assert clear_resp.json()["success"] is True

        gone = await ac.get(f"/api/v1/session-status/{session_id}")
        assert gone.status_code == status.HTTP_404_NOT_FOUND


async def test_session_revert_for_unknown_session_is_bad_request():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post(
            "/api/v1/session-revert",
            json={"speakerId": "Speaker 1", "sessionId": "session_unknown"},
        )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST


async def test_session_override_requires_name():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post(
            "/api/v1/session-override",
            json={"speakerId": "Speaker 1", "newName": "   ", "sessionId": "session_x"},
        )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["detail"]["errors"] == {"newName": ["New name is required"]}


def test_blank_override_is_a_validation_error():
    _, overrides, _ = _service()

    with pytest.raises(MappingValidationError) as excinfo:
        overrides.apply_override(session_id="s1", speaker_id=" ", new_name="", transcription_id="t1")

    assert set(excinfo.value.errors) == {"speakerId", "newName"}
    assert overrides.get_session("s1") is None


def test_deleted_transcription_stays_deleted_after_session_clear():
    mappings, overrides, _ = _service()
    mappings.save(
        SpeakerMappingRequest(transcription_id="t1", mappings=[SpeakerMapping(speaker_id="S1", name="Bob")])
    )
    overrides.apply_override(session_id="s1", speaker_id="S1", new_name="Alice", transcription_id="t1")
    overrides.apply_override(session_id="s2", speaker_id="S9", new_name="Eve", transcription_id="t2")

    assert mappings.delete("t1") is True

    assert overrides.get_session("s1") is None
    assert overrides.clear_session("s1") is False
    assert mappings.get("t1") is None
    # Sessions of other transcriptions are untouched.
    assert overrides.get_session("s2") is not None


def test_deleted_transcription_stays_deleted_after_idle_purge():
    mappings, overrides, clock = _service()
    mappings.save(
        SpeakerMappingRequest(transcription_id="t1", mappings=[SpeakerMapping(speaker_id="S1", name="Bob")])
    )
    overrides.apply_override(session_id="s1", speaker_id="S1", new_name="Alice", transcription_id="t1")
    mappings.delete("t1")

    clock.now += timedelta(minutes=121)

    assert overrides.purge_expired() == []
    assert mappings.get("t1") is None


async def test_delete_endpoint_forgets_session_overrides():
    transcription_id = f"tr-{uuid4()}"
    session_id = f"session_{uuid4().hex}"
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        await ac.post(
            "/api/v1/speaker-mappings",
            json={"transcriptionId": transcription_id, "mappings": [{"speakerId": "S1", "name": "Bob"}]},
        )
        await ac.post(
            "/api/v1/session-override",
            json={"speakerId": "S1", "newName": "Alice", "sessionId": session_id, "transcriptionId": transcription_id},
        )

        deleted = await ac.delete(f"/api/v1/speaker-mappings/{transcription_id}")
        assert deleted.status_code == status.HTTP_204_NO_CONTENT

        status_resp = await ac.get(f"/api/v1/session-status/{session_id}")
        assert status_resp.status_code == status.HTTP_404_NOT_FOUND

        await ac.post("/api/v1/session-clear", json={"sessionId": session_id})
        gone = await ac.get(f"/api/v1/speaker-mappings/{transcription_id}")
        assert gone.status_code == status.HTTP_404_NOT_FOUND
