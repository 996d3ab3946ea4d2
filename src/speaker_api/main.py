import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.speaker_api.api.v1.routes_session_overrides import router as session_overrides_router_v1
from src.speaker_api.api.v1.routes_speaker_mappings import router as speaker_mappings_router_v1
from src.speaker_api.api.v1.routes_system import router as system_router_v1
from src.speaker_api.config import settings
from src.speaker_api.infra.db.bootstrap import init_sql_repositories

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Speaker Identity Override API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    With USE_SQL_REPOS enabled and a DATABASE_URL configured, speaker
    mappings move to the SQL-backed repository. Otherwise (tests, local dev)
    this is a no-op and the in-memory repository remains active.
    """

    init_sql_repositories()

# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(speaker_mappings_router_v1, prefix="/api/v1")
app.include_router(session_overrides_router_v1, prefix="/api/v1")
