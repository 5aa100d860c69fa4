"""Pydantic models for system-related API responses."""

from pydantic import BaseModel


class VersionResponse(BaseModel):
    """Response model for /api/version endpoint."""

    version: str


class HealthResponse(BaseModel):
    """Response model for /api/health endpoint."""

    status: str
    sessions: int


class LogEntry(BaseModel):
    timestamp: str
    level: str
    logger: str
    message: str
