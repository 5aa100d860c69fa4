"""Pydantic models for replay API requests and responses."""

from typing import Any

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Response model for /api/uploads."""

    message: str
    session_id: str
    filename: str
    total_rows: int


class RowErrorModel(BaseModel):
    type: str
    message: str
    row_index: int | None = None
    field: str | None = None


class NextRowResponse(BaseModel):
    """Response model for /api/sessions/{id}/next.

    ``done`` marks normal termination; row-level problems are listed in
    ``errors`` next to the partially annotated row.
    """

    done: bool
    data: dict[str, Any] | None = None
    errors: list[RowErrorModel] = []


class SummaryResponse(BaseModel):
    """Response model for /api/sessions/{id}/summary."""

    total_rows: int
    current_row: int
    battery_discharge_cycles: int
    phase: str


class PlaybackRequest(BaseModel):
    interval_seconds: float | None = Field(default=None, gt=0)


class SpeedRequest(BaseModel):
    interval_seconds: float = Field(gt=0)


class PlaybackStatusResponse(BaseModel):
    running: bool
    interval_seconds: float
    rows_emitted: int
    last_advanced_at: str | None = None
    last_error: str | None = None
    finished: bool
