import asyncio
from uuid import uuid4

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from src.speaker_api.main import app
from src.speaker_session.errors import (
    GatewayError,
    MappingValidationError,
    StaleResponseError,
    TransientNetworkError,
)
from src.speaker_session.gateways import PersistenceGateway, SessionOverrideGateway
from src.speaker_session.models import SpeakerMapping, SpeakerSource


@pytest.fixture
async def api_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test/api/v1") as client:
        yield client


def _mock_client(handler) -> AsyncClient:
    return AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api/v1")


async def test_persistence_round_trip(api_client):
    gateway = PersistenceGateway(api_client)
    transcription_id = f"tr-{uuid4()}"

    assert await gateway.get(transcription_id) is None

    result = await gateway.save(
        transcription_id,
        [
            SpeakerMapping(speaker_id="S1", name="Alice", role="PM"),
            SpeakerMapping(speaker_id="S9", name="Guest", source=SpeakerSource.MANUALLY_ADDED),
        ],
    )
    assert result.success is True
    assert [m.speaker_id for m in result.mappings] == ["S1", "S9"]
    assert all(m.transcription_id == transcription_id for m in result.mappings)

    stored = await gateway.get(transcription_id)
    assert [(m.name, m.source) for m in stored] == [
        ("Alice", SpeakerSource.AUTO_DETECTED),
        ("Guest", SpeakerSource.MANUALLY_ADDED),
    ]

    assert await gateway.delete(transcription_id) is True
    assert await gateway.delete(transcription_id) is False


async def test_save_rejection_surfaces_server_errors(api_client):
    gateway = PersistenceGateway(api_client)

    with pytest.raises(MappingValidationError) as excinfo:
        await gateway.save(f"tr-{uuid4()}", [SpeakerMapping(speaker_id="S1", name="  ")])

    assert "mappings[0].name" in excinfo.value.errors_by_speaker


async def test_session_override_gateway_against_api(api_client):
    gateway = SessionOverrideGateway(api_client)
    session_id = f"session_{uuid4().hex}"
    transcription_id = f"tr-{uuid4()}"

    assert await gateway.session_status(session_id) is None

    applied = await gateway.apply_override("S1", "Alice", session_id, transcription_id=transcription_id)
    assert applied.success is True
    assert applied.original_name is None
    assert applied.new_name == "Alice"

    status = await gateway.session_status(session_id)
    assert status["overrideCount"] == 1
    assert status["isActive"] is True

    reverted = await gateway.revert_override("S1", session_id)
    assert reverted.new_name == "Speaker S1"

    assert await gateway.clear_session(session_id) is True
    assert await gateway.session_status(session_id) is None


async def test_revert_for_unknown_session_is_a_gateway_error(api_client):
    gateway = SessionOverrideGateway(api_client)

    with pytest.raises(GatewayError) as excinfo:
        await gateway.revert_override("S1", "session_missing")

    assert excinfo.value.status_code == 400


async def test_server_errors_are_transient():
    async with _mock_client(lambda request: httpx.Response(503, json={"detail": "down"})) as client:
        gateway = PersistenceGateway(client)
        with pytest.raises(TransientNetworkError):
            await gateway.get("t1")


async def test_connection_failures_are_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _mock_client(handler) as client:
        gateway = SessionOverrideGateway(client)
        with pytest.raises(TransientNetworkError):
            await gateway.clear_session("session_x")


async def test_older_response_is_discarded_when_newer_request_exists():
    started = asyncio.Event()
    release = asyncio.Event()
    calls = []

    async def handler(request):
        calls.append(request.url.path)
        if len(calls) == 1:
            started.set()
            await release.wait()
            return httpx.Response(200, json=[{"speakerId": "S1", "name": "Old"}])
        return httpx.Response(200, json=[{"speakerId": "S1", "name": "New"}])

    async with _mock_client(handler) as client:
        gateway = PersistenceGateway(client)
        first = asyncio.create_task(gateway.get("t1"))
        await started.wait()

        latest = await gateway.get("t1")
        release.set()

        assert latest[0].name == "New"
        with pytest.raises(StaleResponseError):
            await first


async def test_requests_for_different_keys_do_not_conflict():
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(request):
        if request.url.path.endswith("/t1"):
            started.set()
            await release.wait()
        return httpx.Response(200, json=[{"speakerId": "S1", "name": request.url.path[-2:]}])

    async with _mock_client(handler) as client:
        gateway = PersistenceGateway(client)
        first = asyncio.create_task(gateway.get("t1"))
        await started.wait()
        other = await gateway.get("t2")
        release.set()

        assert other[0].name == "t2"
        assert (await first)[0].name == "t1"


async def test_rejected_override_is_a_validation_error(api_client):
    gateway = SessionOverrideGateway(api_client)

    with pytest.raises(MappingValidationError) as excinfo:
        await gateway.apply_override("S1", "   ", f"session_{uuid4().hex}")

    assert excinfo.value.errors_by_speaker == {"S1": ["New name is required"]}
