from __future__ import annotations

from typing import Dict, List, Optional, Sequence


class SpeakerSessionError(Exception):
    """Base class for errors raised by the speaker session client."""


class MappingValidationError(SpeakerSessionError):
    """A mapping cannot be confirmed or saved as entered.

    Recoverable: ``errors_by_speaker`` tells the caller which speaker's
    confirm action is blocked and why.
    """

    def __init__(self, errors_by_speaker: Dict[str, Sequence[str]], message: Optional[str] = None) -> None:
        self.errors_by_speaker: Dict[str, List[str]] = {k: list(v) for k, v in errors_by_speaker.items()}
        if message is None:
            message = "; ".join(f"{speaker}: {msg}" for speaker, msgs in self.errors_by_speaker.items() for msg in msgs)
        super().__init__(message)


class TransientNetworkError(SpeakerSessionError):
    """A gateway call failed in a way worth retrying. Local state is untouched."""


class GatewayError(SpeakerSessionError):
    """The API answered with an unexpected client error."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"{status_code}: {message}")


class StaleResponseError(SpeakerSessionError):
    """A response arrived after a newer request for the same resource."""


class SessionExpiredError(SpeakerSessionError):
    """The session expired and was wiped; a fresh session is already active."""
