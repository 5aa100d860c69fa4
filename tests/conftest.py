"""Shared fixtures for the replay test suite."""

import pytest

from replay.config import ClassifierConfig
from replay.models import RawRow


def _make_raw(
    is_daytime=True,
    grid_status="normal",
    solar=3000,
    demand=2000,
    battery=50,
    heavy=False,
    timestamp="2024-06-01 12:00:00",
    **extras,
) -> RawRow:
    return RawRow(
        timestamp=timestamp,
        is_daytime=is_daytime,
        solar_input_watts=solar,
        grid_status=grid_status,
        household_power_demand_watts=demand,
        heavy_appliance_active=heavy,
        ambient_temperature_celsius=25.0,
        weather_condition="Sunny",
        battery_percent=battery,
        extras=extras,
    )


@pytest.fixture
def make_raw():
    """Factory for telemetry rows with sensible daytime defaults."""
    return _make_raw


@pytest.fixture
def classifier_config():
    return ClassifierConfig()


@pytest.fixture
def sample_csv() -> bytes:
    """Four-row telemetry CSV covering day/night and a grid outage."""
    return (
        "timestamp,is_daytime,solar_input_watts,grid_status,household_power_demand_watts,"
        "heavy_appliance_active,ambient_temperature_celsius,weather_condition,battery_percent,site\n"
        "2024-06-01 12:00:00,True,3000,normal,2000,False,28.5,Sunny,0.65,A\n"
        "2024-06-01 12:00:20,True,1000,power off,2000,True,28.4,Cloudy,64,A\n"
        "2024-06-01 22:00:00,False,0,voltage fluctuation,1500,False,19.0,Rainy,0.2,A\n"
        "2024-06-01 22:00:20,False,0,normal,1500,False,18.9,Rainy,20,A\n"
    ).encode("utf-8")
