import logging
import os
from importlib import metadata
from pathlib import Path

from fastapi import APIRouter, Depends, Query

from backend.api.models.system import HealthResponse, LogEntry, VersionResponse
from backend.core.logging import get_ring_buffer
from backend.services.replay_service import ReplayService, get_replay_service

logger = logging.getLogger("gridpulse.api.system")
router = APIRouter(tags=["system"])


def _get_version() -> str:
    """Get version from environment, VERSION file, or installed package metadata."""

    def clean_v(s: str) -> str:
        s = s.strip()
        if s.lower().startswith("v"):
            return s[1:]
        return s

    # 1. Environment variable (set by Docker/CI)
    env_version = os.getenv("GRIDPULSE_VERSION")
    if env_version:
        return clean_v(env_version)

    # 2. VERSION file
    version_file = Path("VERSION")
    if version_file.exists():
        return clean_v(version_file.read_text())

    # 3. Installed distribution
    try:
        return metadata.version("gridpulse")
    except metadata.PackageNotFoundError:
        return "unknown"


@router.get(
    "/api/version",
    summary="Get System Version",
    response_model=VersionResponse,
)
async def get_version() -> VersionResponse:
    """Return the current system version."""
    return VersionResponse(version=_get_version())


@router.get(
    "/api/health",
    summary="Health Check",
    response_model=HealthResponse,
)
async def health_check(
    service: ReplayService = Depends(get_replay_service),
) -> HealthResponse:
    return HealthResponse(status="ok", sessions=service.session_count())


@router.get(
    "/api/system/logs",
    summary="Recent Logs",
    description="Most recent log lines from the in-memory ring buffer.",
    response_model=list[LogEntry],
)
async def get_logs(limit: int = Query(default=200, ge=1, le=1000)) -> list[LogEntry]:
    return [LogEntry(**entry) for entry in get_ring_buffer().get_logs(limit)]
