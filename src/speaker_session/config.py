from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Client-side session settings.

    Timeouts are soft, application-level policy enforced by the periodic
    expiry tick; they have nothing to do with network timeouts.
    """

    # Base URL of the speaker mapping API, including the version prefix.
    api_base_url: str = os.getenv("SPEAKER_API_BASE_URL", "http://localhost:8000/api/v1")
    api_timeout_seconds: float = float(os.getenv("SPEAKER_API_TIMEOUT_SECONDS", "10"))

    # Idle minutes before the session expires and every override is wiped.
    session_timeout_minutes: int = int(os.getenv("SESSION_TIMEOUT_MINUTES", "120"))
    # Minutes before expiry during which the session reports a warning.
    session_warning_minutes: int = int(os.getenv("SESSION_WARNING_MINUTES", "5"))
    # How often the scheduler re-evaluates expiry.
    tick_interval_seconds: float = float(os.getenv("SESSION_TICK_INTERVAL_SECONDS", "5"))

    # Key of the session record inside tab-scoped storage.
    storage_key: str = os.getenv("SESSION_STORAGE_KEY", "speakerOverrideSession")

    def __post_init__(self) -> None:
        if self.session_warning_minutes >= self.session_timeout_minutes:
            raise ValueError("session_warning_minutes must be smaller than session_timeout_minutes")


settings = Settings()
