import asyncio
import logging
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from backend.api.models.replay import (
    NextRowResponse,
    PlaybackRequest,
    PlaybackStatusResponse,
    SpeedRequest,
    SummaryResponse,
    UploadResponse,
)
from backend.services.replay_service import ReplayService, get_replay_service
from replay.dataset import EXPORT_FORMATS
from replay.errors import (
    DatasetFormatError,
    DatasetNotFoundError,
    EmptyDatasetError,
    ReplayError,
    SessionNotLoadedError,
    UnexportedHistoryError,
)
from replay.session import SessionSummary

logger = logging.getLogger("gridpulse.api.replay")
router = APIRouter(tags=["replay"])

ServiceDep = Annotated[ReplayService, Depends(get_replay_service)]


def _http_error(e: Exception) -> HTTPException:
    """Map replay errors onto HTTP status codes."""
    if isinstance(e, DatasetNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, UnexportedHistoryError):
        return HTTPException(
            status_code=409,
            detail=f"{e}. Download the annotated file or retry with discard_history=true.",
        )
    if isinstance(e, (EmptyDatasetError, DatasetFormatError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, SessionNotLoadedError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _summary_response(summary: SessionSummary) -> SummaryResponse:
    return SummaryResponse(
        total_rows=summary.total_rows,
        current_row=summary.current_row,
        battery_discharge_cycles=summary.discharge_cycles,
        phase=summary.phase.value,
    )


# --- Routes ---


@router.post(
    "/api/uploads",
    summary="Upload Dataset",
    description="Upload a telemetry spreadsheet (.xlsx or .csv) and load it into a replay session.",
    response_model=UploadResponse,
)
async def upload_dataset(
    service: ServiceDep,
    file: Annotated[UploadFile, File()],
    session_id: Annotated[str | None, Query()] = None,
    discard_history: Annotated[bool, Query()] = False,
) -> UploadResponse:
    """Load an uploaded dataset into a new session, or replace an existing one."""
    filename = file.filename or "upload.xlsx"
    data = await file.read()

    max_bytes = int(service.config.max_upload_mb * 1024 * 1024)
    if len(data) > max_bytes:
        raise HTTPException(413, f"File exceeds {service.config.max_upload_mb:g} MB limit")

    try:
        new_id, summary = await asyncio.to_thread(
            service.load_dataset, data, filename, session_id, discard_history
        )
    except (ReplayError, ValueError) as e:
        logger.warning("Upload of %s rejected: %s", filename, e)
        raise _http_error(e) from e

    return UploadResponse(
        message="File uploaded successfully",
        session_id=new_id,
        filename=filename,
        total_rows=summary.total_rows,
    )


@router.get(
    "/api/sessions/{session_id}/next",
    summary="Advance One Row",
    description="Classify the next row of the dataset. Returns done=true once all rows are processed.",
    response_model=NextRowResponse,
)
def next_row(session_id: str, service: ServiceDep) -> dict[str, Any]:
    try:
        result = service.advance(session_id)
    except ReplayError as e:
        raise _http_error(e) from e
    return result.to_dict()


@router.get(
    "/api/sessions/{session_id}/summary",
    summary="Get Session Summary",
    response_model=SummaryResponse,
)
def get_summary(session_id: str, service: ServiceDep) -> SummaryResponse:
    try:
        return _summary_response(service.summary(session_id))
    except ReplayError as e:
        raise _http_error(e) from e


@router.get(
    "/api/sessions/{session_id}/history",
    summary="Get Annotated History",
    description="All rows annotated so far, oldest first. Used by the dashboard to catch up.",
)
def get_history(session_id: str, service: ServiceDep) -> list[dict[str, Any]]:
    try:
        return [row.to_dict() for row in service.history(session_id)]
    except ReplayError as e:
        raise _http_error(e) from e


@router.get(
    "/api/sessions/{session_id}/download",
    summary="Download Annotated Dataset",
)
def download(
    session_id: str,
    service: ServiceDep,
    fmt: Annotated[Literal["xlsx", "csv"], Query(alias="format")] = "xlsx",
) -> Response:
    try:
        payload = service.export(session_id, fmt)
    except ReplayError as e:
        logger.error("Export failed for %s: %s", session_id, e)
        raise _http_error(e) from e

    return Response(
        content=payload,
        media_type=EXPORT_FORMATS[fmt],
        headers={"Content-Disposition": f'attachment; filename="processed_data.{fmt}"'},
    )


@router.delete("/api/sessions/{session_id}", summary="Delete Session")
def delete_session(session_id: str, service: ServiceDep) -> dict[str, str]:
    try:
        service.delete(session_id)
    except ReplayError as e:
        raise _http_error(e) from e
    return {"status": "deleted", "session_id": session_id}


# --- Playback ---


@router.get(
    "/api/sessions/{session_id}/playback",
    summary="Get Playback Status",
    response_model=PlaybackStatusResponse,
)
def playback_status(session_id: str, service: ServiceDep) -> dict[str, Any]:
    try:
        return service.playback_status(session_id)
    except ReplayError as e:
        raise _http_error(e) from e


@router.post(
    "/api/sessions/{session_id}/playback/start",
    summary="Start Playback",
    description="Advance rows in the background, pushing each one as a 'replay_row' event.",
    response_model=PlaybackStatusResponse,
)
def start_playback(
    session_id: str, service: ServiceDep, payload: PlaybackRequest | None = None
) -> dict[str, Any]:
    interval = payload.interval_seconds if payload else None
    try:
        return service.start_playback(session_id, interval)
    except (ReplayError, ValueError) as e:
        raise _http_error(e) from e


@router.post(
    "/api/sessions/{session_id}/playback/stop",
    summary="Stop Playback",
    response_model=PlaybackStatusResponse,
)
def stop_playback(session_id: str, service: ServiceDep) -> dict[str, Any]:
    try:
        return service.stop_playback(session_id)
    except ReplayError as e:
        raise _http_error(e) from e


@router.post(
    "/api/sessions/{session_id}/playback/speed",
    summary="Set Playback Speed",
    response_model=PlaybackStatusResponse,
)
def set_speed(session_id: str, payload: SpeedRequest, service: ServiceDep) -> dict[str, Any]:
    try:
        return service.set_speed(session_id, payload.interval_seconds)
    except (ReplayError, ValueError) as e:
        raise _http_error(e) from e
