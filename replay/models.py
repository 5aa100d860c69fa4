"""
Replay Data Model

Raw telemetry rows, annotated rows and the state carried between rows.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class GridStatus(Enum):
    """Grid availability reported by the telemetry feed."""

    NORMAL = "normal"
    POWER_OFF = "power_off"
    VOLTAGE_FLUCTUATION = "voltage_fluctuation"

    @property
    def degraded(self) -> bool:
        return self is not GridStatus.NORMAL

    @classmethod
    def parse(cls, value: Any) -> Optional["GridStatus"]:
        """Parse a grid status cell, accepting 'power off', 'Power-Off' etc."""
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace(" ", "_").replace("-", "_")
        for status in cls:
            if status.value == key:
                return status
        return None


class PowerSource(Enum):
    """Supply (or combination) serving the household load."""

    SOLAR = "Solar"
    GRID = "Grid"
    SOLAR_GRID = "Solar+Grid"
    SOLAR_BATTERY = "Solar+Battery"
    BATTERY = "Battery"

    @property
    def uses_battery(self) -> bool:
        return self in (PowerSource.BATTERY, PowerSource.SOLAR_BATTERY)


class BatteryAction(Enum):
    """What the battery does during the interval."""

    CHARGING = "Charging"
    DISCHARGING = "Discharging"
    IDLE = "Idle"


class SessionPhase(Enum):
    """Lifecycle of a replay session."""

    UNLOADED = "unloaded"
    LOADED = "loaded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Alert:
    """An operational alert raised for a row."""

    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


# Spreadsheet column order of the telemetry fields
RAW_FIELDS = (
    "timestamp",
    "is_daytime",
    "solar_input_watts",
    "grid_status",
    "household_power_demand_watts",
    "heavy_appliance_active",
    "ambient_temperature_celsius",
    "weather_condition",
    "battery_percent",
)

DERIVED_FIELDS = (
    "battery_percent_normalized",
    "power_source",
    "battery_action",
    "battery_efficiency",
    "solar_contribution",
    "grid_contribution",
    "battery_contribution",
    "total_consumption_kwh",
    "estimated_battery_backup_time",
    "alerts",
    "discharge_cycles",
)


@dataclass(frozen=True)
class RawRow:
    """
    One telemetry record as read from the dataset.

    Values are kept as read; parsing happens during classification so that
    failures can be reported against the row index. Columns outside the
    telemetry schema are carried in ``extras``.
    """

    timestamp: Any = None
    is_daytime: Any = None
    solar_input_watts: Any = None
    grid_status: Any = None
    household_power_demand_watts: Any = None
    heavy_appliance_active: Any = None
    ambient_temperature_celsius: Any = None
    weather_condition: Any = None
    battery_percent: Any = None
    extras: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "RawRow":
        known = {}
        extras = {}
        for key, value in record.items():
            name = str(key).strip()
            if name in RAW_FIELDS:
                known[name] = value
            elif name not in DERIVED_FIELDS:
                extras[name] = value
        return cls(extras=extras, **known)

    def to_record(self) -> Dict[str, Any]:
        record = {name: getattr(self, name) for name in RAW_FIELDS}
        record.update(self.extras)
        return record


@dataclass(frozen=True)
class SessionState:
    """State carried from one row to the next."""

    cursor: int = 0
    discharge_cycles: int = 0
    last_battery_action: Optional[BatteryAction] = None


@dataclass(frozen=True)
class AnnotatedRow:
    """A raw row plus the energy-management decision derived for it."""

    row_index: int
    raw: RawRow
    battery_percent: Optional[float]
    power_source: Optional[PowerSource]
    battery_action: Optional[BatteryAction]
    battery_efficiency: float
    solar_contribution: Optional[float]
    grid_contribution: Optional[float]
    battery_contribution: Optional[float]
    total_consumption_kwh: Optional[float]
    estimated_battery_backup_time: Optional[float]
    alerts: Tuple[Alert, ...] = ()
    discharge_cycles: int = 0

    def derived(self) -> Dict[str, Any]:
        return {
            "battery_percent_normalized": self.battery_percent,
            "power_source": self.power_source.value if self.power_source else None,
            "battery_action": self.battery_action.value if self.battery_action else None,
            "battery_efficiency": self.battery_efficiency,
            "solar_contribution": self.solar_contribution,
            "grid_contribution": self.grid_contribution,
            "battery_contribution": self.battery_contribution,
            "total_consumption_kwh": self.total_consumption_kwh,
            "estimated_battery_backup_time": self.estimated_battery_backup_time,
            "alerts": None,
            "discharge_cycles": self.discharge_cycles,
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON form used by the API and the push channel."""
        data = self.raw.to_record()
        if self.battery_percent is not None:
            data["battery_percent"] = self.battery_percent
        data.update(self.derived())
        data["alerts"] = [alert.to_dict() for alert in self.alerts]
        data["row_index"] = self.row_index
        return data

    def to_record(self) -> Dict[str, Any]:
        """
        Flat spreadsheet form; alerts are joined into one cell.

        The battery_percent cell stays as uploaded so annotated and pending
        rows share one scale. The 0-100 value is in battery_percent_normalized.
        """
        data = self.raw.to_record()
        data.update(self.derived())
        data["alerts"] = ", ".join(alert.message for alert in self.alerts)
        return data
