"""
GridPulse Replay Package

Replays recorded smart-grid telemetry one row at a time and derives an
energy-management decision for each timestamp.

Modules:
    classifier: Per-row power source / battery action decisions
    session: Replay state machine and annotated history
    driver: Background playback pacing
    dataset: Spreadsheet reading and export
    config: Configuration loading from config.yaml
"""

from .classifier import RowClassifier, classify_row
from .config import ReplayConfig, load_replay_config
from .session import ReplaySession

__all__ = ["RowClassifier", "classify_row", "ReplaySession", "ReplayConfig", "load_replay_config"]
