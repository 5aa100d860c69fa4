"""
Replay Configuration

Loads and validates the replay configuration from config.yaml.
"""

import logging
import os
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GRIDPULSE_CONFIG"


@dataclass
class ClassifierConfig:
    """Constants used by the row classifier."""

    battery_capacity_kwh: float = 10.0
    slice_seconds: float = 20.0
    low_battery_threshold_percent: float = 28.0
    efficiency_loss_per_cycle_percent: float = 0.2

    @property
    def hour_fraction(self) -> float:
        """The simulated slice expressed as a fraction of an hour."""
        return self.slice_seconds / 3600


@dataclass
class PlaybackConfig:
    """Pacing limits for the playback driver."""

    default_interval_seconds: float = 20.0
    min_interval_seconds: float = 0.5
    max_interval_seconds: float = 600.0


@dataclass
class ReplayConfig:
    """Main replay configuration."""

    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    max_upload_mb: float = 20.0


def default_config_path() -> str:
    return os.environ.get(CONFIG_ENV_VAR, "config.yaml")


def load_replay_config(config_path: str | None = None) -> ReplayConfig:
    """
    Load replay configuration from config.yaml.

    Falls back to defaults if the file or the replay section is missing.
    """
    config_path = config_path or default_config_path()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file not found at %s, using defaults", config_path)
        return ReplayConfig()
    except yaml.YAMLError as e:
        logger.error("Failed to load config: %s", e)
        return ReplayConfig()

    replay_data = data.get("replay", {})
    if not replay_data:
        logger.info("No replay section in config, using defaults")
        return ReplayConfig()

    ctrl_data = replay_data.get("classifier", {})
    classifier = ClassifierConfig(
        battery_capacity_kwh=float(
            ctrl_data.get("battery_capacity_kwh", ClassifierConfig.battery_capacity_kwh)
        ),
        slice_seconds=float(ctrl_data.get("slice_seconds", ClassifierConfig.slice_seconds)),
        low_battery_threshold_percent=float(
            ctrl_data.get(
                "low_battery_threshold_percent", ClassifierConfig.low_battery_threshold_percent
            )
        ),
        efficiency_loss_per_cycle_percent=float(
            ctrl_data.get(
                "efficiency_loss_per_cycle_percent",
                ClassifierConfig.efficiency_loss_per_cycle_percent,
            )
        ),
    )
    if classifier.battery_capacity_kwh <= 0:
        raise ValueError("replay.classifier.battery_capacity_kwh must be positive")
    if classifier.slice_seconds <= 0:
        raise ValueError("replay.classifier.slice_seconds must be positive")

    play_data = replay_data.get("playback", {})
    playback = PlaybackConfig(
        default_interval_seconds=float(
            play_data.get("default_interval_seconds", PlaybackConfig.default_interval_seconds)
        ),
        min_interval_seconds=float(
            play_data.get("min_interval_seconds", PlaybackConfig.min_interval_seconds)
        ),
        max_interval_seconds=float(
            play_data.get("max_interval_seconds", PlaybackConfig.max_interval_seconds)
        ),
    )
    if not (
        0 < playback.min_interval_seconds
        <= playback.default_interval_seconds
        <= playback.max_interval_seconds
    ):
        raise ValueError(
            "replay.playback intervals must satisfy 0 < min <= default <= max"
        )

    return ReplayConfig(
        classifier=classifier,
        playback=playback,
        max_upload_mb=float(replay_data.get("max_upload_mb", 20.0)),
    )
