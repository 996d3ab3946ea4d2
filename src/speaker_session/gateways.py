from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from src.speaker_session.errors import (
    GatewayError,
    MappingValidationError,
    StaleResponseError,
    TransientNetworkError,
)
from src.speaker_session.models import SpeakerMapping

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    success: bool
    mappings: List[SpeakerMapping]
    message: Optional[str] = None


@dataclass
class OverrideResult:
    success: bool
    session_id: str
    speaker_id: str
    original_name: Optional[str] = None
    new_name: Optional[str] = None


def _detail(response: httpx.Response) -> Any:
    try:
        return response.json().get("detail")
    except (ValueError, AttributeError):
        return response.text


class _Gateway:
    """Shared request plumbing for the API gateways.

    Every request takes a ticket from a monotonically increasing counter kept
    per resource key. When the response arrives and a newer ticket has been
    issued for the same key, the response is stale and is discarded by
    raising :class:`StaleResponseError`.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._counter = itertools.count(1)
        self._latest: Dict[str, int] = {}

    async def _request(self, key: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        ticket = next(self._counter)
        self._latest[key] = ticket
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransientNetworkError(f"{method} {url} failed: {exc}") from exc

        if self._latest.get(key) != ticket:
            raise StaleResponseError(f"Discarding stale response for {key}")
        if response.status_code >= 500:
            raise TransientNetworkError(f"{method} {url} returned {response.status_code}")
        return response


class PersistenceGateway(_Gateway):
    """Durable per-transcription mapping storage behind ``/speaker-mappings``."""

    async def save(self, transcription_id: str, mappings: Sequence[SpeakerMapping]) -> SaveResult:
        payload = {
            "transcriptionId": transcription_id,
            "mappings": [m.model_dump(mode="json", by_alias=True) for m in mappings],
        }
        response = await self._request(f"mappings:{transcription_id}", "POST", "/speaker-mappings", json=payload)

        if response.status_code == httpx.codes.BAD_REQUEST:
            detail = _detail(response)
            if isinstance(detail, dict):
                raise MappingValidationError(detail.get("errors") or {}, detail.get("message"))
            raise MappingValidationError({}, str(detail))
        if response.status_code != httpx.codes.OK:
            raise GatewayError(response.status_code, str(_detail(response)))

        body = response.json()
        return SaveResult(
            success=bool(body.get("success", True)),
            mappings=[SpeakerMapping.model_validate(m) for m in body.get("mappings", [])],
            message=body.get("message"),
        )

    async def get(self, transcription_id: str) -> Optional[List[SpeakerMapping]]:
        response = await self._request(f"mappings:{transcription_id}", "GET", f"/speaker-mappings/{transcription_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            raise GatewayError(response.status_code, str(_detail(response)))
        return [SpeakerMapping.model_validate(m) for m in response.json()]

    async def delete(self, transcription_id: str) -> bool:
        response = await self._request(
            f"mappings:{transcription_id}", "DELETE", f"/speaker-mappings/{transcription_id}"
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        if response.status_code not in (httpx.codes.OK, httpx.codes.NO_CONTENT):
            raise GatewayError(response.status_code, str(_detail(response)))
        return True


class SessionOverrideGateway(_Gateway):
    """Server mirror of the session override log."""

    async def apply_override(
        self,
        speaker_id: str,
        new_name: str,
        session_id: str,
        *,
        new_role: Optional[str] = None,
        transcription_id: Optional[str] = None,
    ) -> OverrideResult:
        payload: Dict[str, Any] = {"speakerId": speaker_id, "newName": new_name, "sessionId": session_id}
        if new_role is not None:
            payload["newRole"] = new_role
        if transcription_id is not None:
            payload["transcriptionId"] = transcription_id
        response = await self._request(f"override:{session_id}:{speaker_id}", "POST", "/session-override", json=payload)
        if response.status_code == httpx.codes.BAD_REQUEST:
            detail = _detail(response)
            if isinstance(detail, dict):
                messages = [msg for msgs in (detail.get("errors") or {}).values() for msg in msgs]
                raise MappingValidationError({speaker_id: messages or [str(detail.get("message"))]}, detail.get("message"))
            raise MappingValidationError({speaker_id: [str(detail)]})
        return self._override_result(response)

    async def revert_override(self, speaker_id: str, session_id: str) -> OverrideResult:
        response = await self._request(
            f"override:{session_id}:{speaker_id}",
            "POST",
            "/session-revert",
            json={"speakerId": speaker_id, "sessionId": session_id},
        )
        return self._override_result(response)

    async def clear_session(self, session_id: str) -> bool:
        response = await self._request(f"session:{session_id}", "POST", "/session-clear", json={"sessionId": session_id})
        if response.status_code != httpx.codes.OK:
            raise GatewayError(response.status_code, str(_detail(response)))
        return bool(response.json().get("success"))

    async def session_status(self, session_id: str) -> Optional[Dict[str, Any]]:
        response = await self._request(f"session:{session_id}", "GET", f"/session-status/{session_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            raise GatewayError(response.status_code, str(_detail(response)))
        return response.json()

    @staticmethod
    def _override_result(response: httpx.Response) -> OverrideResult:
        if response.status_code != httpx.codes.OK:
            raise GatewayError(response.status_code, str(_detail(response)))
        body = response.json()
        return OverrideResult(
            success=bool(body.get("success")),
            session_id=body.get("sessionId", ""),
            speaker_id=body.get("speakerId", ""),
            original_name=body.get("originalName"),
            new_name=body.get("newName"),
        )
