"""
Replay Service

Session registry behind the HTTP layer. Maps opaque session handles to a
ReplaySession and its playback driver, and adapts uploads/exports to the
dataset helpers.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from backend.core.websockets import ws_manager
from replay.config import ReplayConfig, load_replay_config
from replay.dataset import read_dataset, rows_from_frame, write_dataset
from replay.driver import ReplayDriver
from replay.errors import DatasetNotFoundError, ReplayError, UnexportedHistoryError
from replay.models import AnnotatedRow
from replay.session import AdvanceResult, ReplaySession, SessionSummary

logger = logging.getLogger("gridpulse.services.replay")


@dataclass
class SessionEntry:
    """A registered session with its driver and upload metadata."""

    session_id: str
    session: ReplaySession
    driver: ReplayDriver
    filename: str
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class ReplayService:
    """Registry of replay sessions keyed by handle."""

    def __init__(
        self,
        config: ReplayConfig | None = None,
        emit: Callable[[str, Any], None] | None = None,
    ) -> None:
        self.config = config or ReplayConfig()
        self._emit = emit or ws_manager.publish
        self._sessions: dict[str, SessionEntry] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionEntry:
        with self._lock:
            entry = self._sessions.get(session_id)
        if entry is None:
            raise DatasetNotFoundError(f"Session '{session_id}' not found")
        return entry

    def load_dataset(
        self,
        data: bytes,
        filename: str,
        session_id: str | None = None,
        discard_history: bool = False,
    ) -> tuple[str, SessionSummary]:
        """
        Parse an upload and load it into a new or existing session.

        Reloading an existing session replaces its dataset (see
        ReplaySession.load for the unexported-history rule). Running playback
        is stopped before the swap; a rejected reload leaves it running.
        """
        rows = rows_from_frame(read_dataset(data, filename))

        if session_id is None:
            session_id = uuid.uuid4().hex
            session = ReplaySession(self.config.classifier)
            session.load(rows)
            driver = ReplayDriver(session_id, session, self._emit, self.config.playback)
            with self._lock:
                self._sessions[session_id] = SessionEntry(
                    session_id=session_id,
                    session=session,
                    driver=driver,
                    filename=filename,
                )
            logger.info("Created session %s from %s (%d rows)", session_id, filename, len(rows))
        else:
            entry = self.get(session_id)
            if entry.session.has_unexported_history and not discard_history:
                raise UnexportedHistoryError(
                    f"Session '{session_id}' has annotated rows that were not exported"
                )
            was_running = entry.driver.running
            entry.driver.stop()
            try:
                entry.session.load(rows, discard_history=discard_history)
            except ReplayError:
                # Playback advanced between the check and the stop
                if was_running:
                    entry.driver.start()
                raise
            entry.driver = ReplayDriver(session_id, entry.session, self._emit, self.config.playback)
            entry.filename = filename
            logger.info("Reloaded session %s from %s (%d rows)", session_id, filename, len(rows))

        return session_id, self.get(session_id).session.summary()

    def advance(self, session_id: str) -> AdvanceResult:
        return self.get(session_id).session.advance()

    def summary(self, session_id: str) -> SessionSummary:
        return self.get(session_id).session.summary()

    def history(self, session_id: str) -> tuple[AnnotatedRow, ...]:
        return self.get(session_id).session.history

    def export(self, session_id: str, fmt: str = "xlsx") -> bytes:
        session = self.get(session_id).session
        frame = session.export_annotated()
        payload = write_dataset(frame, fmt)
        session.mark_exported(frame)
        return payload

    def start_playback(self, session_id: str, interval_seconds: float | None = None) -> dict[str, Any]:
        entry = self.get(session_id)
        entry.driver.start(interval_seconds)
        return entry.driver.get_status()

    def stop_playback(self, session_id: str) -> dict[str, Any]:
        entry = self.get(session_id)
        entry.driver.stop()
        return entry.driver.get_status()

    def set_speed(self, session_id: str, interval_seconds: float) -> dict[str, Any]:
        entry = self.get(session_id)
        entry.driver.set_interval(interval_seconds)
        return entry.driver.get_status()

    def playback_status(self, session_id: str) -> dict[str, Any]:
        return self.get(session_id).driver.get_status()

    def delete(self, session_id: str) -> None:
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            raise DatasetNotFoundError(f"Session '{session_id}' not found")
        entry.driver.stop()
        logger.info("Deleted session %s", session_id)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def shutdown(self) -> None:
        """Stop all playback threads."""
        with self._lock:
            entries = list(self._sessions.values())
        for entry in entries:
            entry.driver.stop()


# --- Service Singleton ---
_replay_service: ReplayService | None = None
_replay_service_lock = threading.Lock()


def get_replay_service() -> ReplayService:
    """Get or create the singleton ReplayService (double-checked locking)."""
    global _replay_service
    if _replay_service is None:
        with _replay_service_lock:
            if _replay_service is None:
                _replay_service = ReplayService(load_replay_config())
    return _replay_service
