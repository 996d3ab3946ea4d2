from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized API settings.

    Environment-variable handling lives here so the services and repositories
    depend on typed attributes instead of calling os.getenv directly.
    """

    # Idle time after which a server-side session tracker is purged together
    # with the speaker mappings it created.
    session_timeout_minutes: int = int(os.getenv("SESSION_TIMEOUT_MINUTES", "120"))

    # Transcription id used for session overrides when the caller does not
    # name one.
    default_override_transcription_id: str = os.getenv("DEFAULT_OVERRIDE_TRANSCRIPTION_ID", "temp_transcription")

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Field limits applied to incoming speaker mappings.
    max_name_length: int = int(os.getenv("MAX_SPEAKER_NAME_LENGTH", "100"))
    max_role_length: int = int(os.getenv("MAX_SPEAKER_ROLE_LENGTH", "50"))

    # CORS configuration: comma-separated origins. Default is "*" which is
    # acceptable for local development but should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")


settings = Settings()
