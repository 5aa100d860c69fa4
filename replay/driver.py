"""
Playback Driver

Background thread that advances a ReplaySession at an operator-selected
interval and pushes each annotated row to listeners.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Optional

from .config import PlaybackConfig
from .models import SessionPhase
from .session import ReplaySession

logger = logging.getLogger(__name__)

EmitFn = Callable[[str, Any], None]


@dataclass
class DriverStatus:
    """Current status of the playback driver."""

    running: bool = False
    interval_seconds: float = 20.0
    rows_emitted: int = 0
    last_advanced_at: Optional[str] = None
    last_error: Optional[str] = None
    finished: bool = False


class ReplayDriver:
    """
    Paces ``advance`` calls on one session.

    Pacing lives here, not in the session: the session has no notion of
    wall-clock time. Stopping only ends the wait; a row already being
    classified completes.
    """

    def __init__(
        self,
        session_id: str,
        session: ReplaySession,
        emit: EmitFn,
        config: Optional[PlaybackConfig] = None,
    ):
        self.session_id = session_id
        self.session = session
        self.emit = emit
        self.config = config or PlaybackConfig()

        self.status = DriverStatus(interval_seconds=self.config.default_interval_seconds)

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _validate_interval(self, interval_seconds: float) -> float:
        low = self.config.min_interval_seconds
        high = self.config.max_interval_seconds
        if not low <= interval_seconds <= high:
            raise ValueError(
                f"Invalid interval: {interval_seconds}. Must be between {low} and {high} seconds"
            )
        return float(interval_seconds)

    def set_interval(self, interval_seconds: float) -> None:
        """Change playback speed; applies from the next wait."""
        interval = self._validate_interval(interval_seconds)
        with self._lock:
            self.status.interval_seconds = interval
        logger.info("Playback interval for %s set to %.1fs", self.session_id, interval)

    def start(self, interval_seconds: Optional[float] = None) -> None:
        """Start playback in a background thread."""
        if interval_seconds is not None:
            self.set_interval(interval_seconds)

        if self.running:
            logger.warning("Playback already running for %s", self.session_id)
            return

        with self._lock:
            self.status.running = True
            self.status.finished = False
            self.status.last_error = None

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name=f"replay-{self.session_id}", daemon=True
        )
        self._thread.start()
        logger.info(
            "Playback started for %s (interval: %.1fs)",
            self.session_id,
            self.status.interval_seconds,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Stop playback and wait for the loop to exit."""
        self._stop_event.set()
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        with self._lock:
            self.status.running = False
        logger.info("Playback stopped for %s", self.session_id)

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            status = asdict(self.status)
        status["running"] = status["running"] and self.running
        return status

    def _run_loop(self) -> None:
        """Advance, emit, wait; until exhausted, stopped or failed."""
        try:
            while not self._stop_event.is_set():
                if not self._tick():
                    break
                with self._lock:
                    interval = self.status.interval_seconds
                if self._stop_event.wait(interval):
                    break
        finally:
            with self._lock:
                self.status.running = False

    def _tick(self) -> bool:
        """Run one advance. Returns False when playback should end."""
        try:
            result = self.session.advance()
        except Exception as e:
            logger.exception("Playback tick failed for %s: %s", self.session_id, e)
            with self._lock:
                self.status.last_error = str(e)
            self.emit("replay_error", {"session_id": self.session_id, "error": str(e)})
            return False

        if result.done:
            self._finish()
            return False

        with self._lock:
            self.status.rows_emitted += 1
            self.status.last_advanced_at = datetime.now(UTC).isoformat()

        payload = result.to_dict()
        payload["session_id"] = self.session_id
        self.emit("replay_row", payload)

        if self.session.phase is SessionPhase.EXHAUSTED:
            self._finish()
            return False
        return True

    def _finish(self) -> None:
        summary = self.session.summary()
        with self._lock:
            self.status.finished = True
        self.emit(
            "replay_done",
            {
                "session_id": self.session_id,
                "total_rows": summary.total_rows,
                "battery_discharge_cycles": summary.discharge_cycles,
            },
        )
        logger.info("Playback finished for %s", self.session_id)
