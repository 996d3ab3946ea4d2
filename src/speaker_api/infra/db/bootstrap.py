from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine

from src.speaker_api.config import settings
from src.speaker_api.infra.db.models import Base
from src.speaker_api.infra.db.session import create_sqlalchemy_session_factory
from src.speaker_api.infra.db.sql_speaker_mappings import SqlSpeakerMappingRepository
from src.speaker_api.services.speaker_mappings.service import speaker_mapping_service

logger = logging.getLogger(__name__)


def init_sql_repositories(database_url: Optional[str] = None, *, force: bool = False) -> bool:
    """Switch the mapping service to a SQL-backed repository when configured.

    Returns True when the switch happened. Without USE_SQL_REPOS (or
    ``force``) and a database URL this is a no-op and the in-memory
    repository stays active.
    """

    if not (settings.use_sql_repos or force):
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory repository")
        return False

    engine = create_engine(db_url, future=True)
    # Convenient for early deployments; migrations should own this later.
    Base.metadata.create_all(engine)

    speaker_mapping_service.use_repository(SqlSpeakerMappingRepository(create_sqlalchemy_session_factory(db_url)))
    logger.info("Speaker mappings are now stored in %s", engine.url.render_as_string(hide_password=True))
    return True
