"""
Replay Session

Owns one loaded dataset and the state carried between its rows:
1. Loading a dataset (resets state and history)
2. Advancing one row at a time through the classifier
3. Reporting progress
4. Exporting the annotated dataset

State machine: UNLOADED -> LOADED -> EXHAUSTED, and back to LOADED on load.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .classifier import RowClassifier
from .config import ClassifierConfig
from .dataset import annotated_frame
from .errors import (
    EmptyDatasetError,
    RowError,
    SessionNotLoadedError,
    UnexportedHistoryError,
)
from .models import AnnotatedRow, RawRow, SessionPhase, SessionState

logger = logging.getLogger(__name__)


@dataclass
class AdvanceResult:
    """Outcome of one advance call."""

    done: bool
    row: Optional[AnnotatedRow] = None
    errors: List[RowError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "done": self.done,
            "data": self.row.to_dict() if self.row else None,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass(frozen=True)
class SessionSummary:
    """Progress snapshot of a session."""

    total_rows: int
    current_row: int
    discharge_cycles: int
    phase: SessionPhase


class ReplaySession:
    """
    Replays one telemetry dataset through the row classifier.

    All operations are serialized by a per-session lock, so a background
    playback driver and HTTP callers can share one session.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.classifier = RowClassifier(config or ClassifierConfig())
        self._lock = threading.Lock()
        self._rows: Tuple[RawRow, ...] = ()
        self._history: List[AnnotatedRow] = []
        self._state = SessionState()
        self._phase = SessionPhase.UNLOADED
        # Annotated rows the caller has received as an export
        self._exported_rows = 0
        self._generation = 0

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            return self._phase

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def history(self) -> Tuple[AnnotatedRow, ...]:
        with self._lock:
            return tuple(self._history)

    @property
    def has_unexported_history(self) -> bool:
        with self._lock:
            return len(self._history) > self._exported_rows

    def load(self, rows: Sequence[RawRow], discard_history: bool = False) -> None:
        """
        Replace the active dataset and reset all carried state.

        Loading is destructive: annotated rows from the previous dataset are
        dropped. If they were never exported, the caller must pass
        ``discard_history=True``.

        Raises:
            EmptyDatasetError: ``rows`` is empty
            UnexportedHistoryError: Unexported history and no discard signal
        """
        rows = tuple(rows)
        if not rows:
            raise EmptyDatasetError("Dataset has no rows")

        with self._lock:
            unexported = len(self._history) - self._exported_rows
            if unexported > 0 and not discard_history:
                raise UnexportedHistoryError(f"{unexported} annotated rows have not been exported")
            if unexported > 0:
                logger.warning("Discarding %d unexported annotated rows", unexported)

            self._rows = rows
            self._history = []
            self._state = SessionState()
            self._phase = SessionPhase.LOADED
            self._exported_rows = 0
            self._generation += 1

        logger.info("Loaded dataset with %d rows", len(rows))

    def advance(self) -> AdvanceResult:
        """
        Classify the next row and append it to history.

        Returns ``done=True`` without side effects once every row has been
        processed.

        Raises:
            SessionNotLoadedError: No dataset has been loaded
        """
        with self._lock:
            if self._phase is SessionPhase.UNLOADED:
                raise SessionNotLoadedError("No dataset loaded")
            if self._phase is SessionPhase.EXHAUSTED:
                return AdvanceResult(done=True)

            raw = self._rows[self._state.cursor]
            result = self.classifier.classify(raw, self._state)

            self._history.append(result.row)
            self._state = result.state
            if self._state.cursor >= len(self._rows):
                self._phase = SessionPhase.EXHAUSTED
                logger.info("Dataset exhausted after %d rows", len(self._rows))

        for error in result.errors:
            logger.warning("%s", error.message)

        return AdvanceResult(done=False, row=result.row, errors=result.errors)

    def summary(self) -> SessionSummary:
        """Current progress; valid in any phase."""
        with self._lock:
            return SessionSummary(
                total_rows=len(self._rows),
                current_row=self._state.cursor,
                discharge_cycles=self._state.discharge_cycles,
                phase=self._phase,
            )

    def export_annotated(self) -> pd.DataFrame:
        """
        Full dataset in its input shape, annotated up to the cursor.

        Building the frame does not count as delivering it; pass the frame to
        ``mark_exported`` once its bytes have been written.

        Raises:
            SessionNotLoadedError: No dataset has been loaded
        """
        with self._lock:
            if self._phase is SessionPhase.UNLOADED:
                raise SessionNotLoadedError("No dataset loaded")
            frame = annotated_frame(self._rows, self._history)
            frame.attrs["annotated_rows"] = len(self._history)
            frame.attrs["generation"] = self._generation
        return frame

    def mark_exported(self, frame: pd.DataFrame) -> None:
        """Count the annotated rows of an exported frame as delivered."""
        with self._lock:
            if frame.attrs.get("generation") != self._generation:
                # Frame belongs to a dataset that has since been replaced
                return
            annotated_rows = frame.attrs.get("annotated_rows", 0)
            self._exported_rows = max(self._exported_rows, annotated_rows)
