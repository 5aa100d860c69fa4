"""
Row Classifier

Energy-management decision for a single telemetry row.

Determines:
- Which power source supplies the household load
- Whether the battery charges, discharges or idles
- How much energy each source contributed over the simulated slice
- Battery efficiency and estimated backup time
- Operational alerts for the row

The classifier holds no state of its own. Discharge-cycle detection depends on
the previous row's battery action, which is threaded through SessionState.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from .config import ClassifierConfig
from .errors import DataValidationError, RowError, UnclassifiedStateError
from .models import (
    Alert,
    AnnotatedRow,
    BatteryAction,
    GridStatus,
    PowerSource,
    RawRow,
    SessionState,
)

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}


@dataclass
class ClassificationResult:
    """Annotated row, the state for the next row, and any row-level errors."""

    row: AnnotatedRow
    state: SessionState
    errors: List[RowError] = field(default_factory=list)


class RowClassifier:
    """
    Rule-based decision procedure for one row.

    Missing or malformed cells are reported as DataValidationError and only
    the fields derived from them are left empty.
    """

    def __init__(self, config: ClassifierConfig):
        self.config = config

    def classify(self, raw: RawRow, state: SessionState) -> ClassificationResult:
        """
        Classify one raw row given the carried state.

        Args:
            raw: The telemetry row at index ``state.cursor``
            state: State carried from the previous row

        Returns:
            ClassificationResult with the annotated row and the next state
        """
        row_index = state.cursor
        errors: List[RowError] = []

        is_daytime = _parse_bool(raw.is_daytime, "is_daytime", row_index, errors)
        heavy_appliance = _parse_bool(
            raw.heavy_appliance_active, "heavy_appliance_active", row_index, errors
        )
        solar = _parse_number(raw.solar_input_watts, "solar_input_watts", row_index, errors)
        demand = _parse_number(
            raw.household_power_demand_watts, "household_power_demand_watts", row_index, errors
        )
        battery = self._normalize_battery(raw.battery_percent, row_index, errors)
        grid = self._parse_grid_status(raw.grid_status, row_index, errors)

        alerts: List[Alert] = []
        power_source = None
        if is_daytime is not None and grid is not None:
            try:
                power_source = self._classify_power_source(
                    is_daytime, grid, solar, demand, bool(heavy_appliance), alerts
                )
            except UnclassifiedStateError as e:
                e.row_index = row_index
                errors.append(e)

        if battery is not None and battery < self.config.low_battery_threshold_percent:
            alerts.append(Alert("battery_low", f"Battery Low: {battery:g}%"))

        battery_action = None
        if power_source is not None:
            battery_action = self._classify_battery_action(
                power_source, is_daytime, grid, solar, demand, battery
            )

        next_state = self._next_state(state, battery_action)

        battery_efficiency = (
            100 - next_state.discharge_cycles * self.config.efficiency_loss_per_cycle_percent
        )

        total_kwh = self._to_kwh(demand) if demand is not None else None
        solar_kwh, grid_kwh, battery_kwh = self._split_energy(power_source, solar, total_kwh)

        backup_hours = None
        if battery is not None and demand is not None:
            backup_hours = self._estimate_backup_time(battery, demand)

        row = AnnotatedRow(
            row_index=row_index,
            raw=raw,
            battery_percent=battery,
            power_source=power_source,
            battery_action=battery_action,
            battery_efficiency=battery_efficiency,
            solar_contribution=solar_kwh,
            grid_contribution=grid_kwh,
            battery_contribution=battery_kwh,
            total_consumption_kwh=total_kwh,
            estimated_battery_backup_time=backup_hours,
            alerts=tuple(alerts),
            discharge_cycles=next_state.discharge_cycles,
        )

        logger.debug(
            "Row %d: source=%s action=%s cycles=%d alerts=%d errors=%d",
            row_index,
            power_source.value if power_source else None,
            battery_action.value if battery_action else None,
            next_state.discharge_cycles,
            len(alerts),
            len(errors),
        )

        return ClassificationResult(row=row, state=next_state, errors=errors)

    def _normalize_battery(
        self, value: object, row_index: int, errors: List[RowError]
    ) -> Optional[float]:
        """Parse battery_percent, scaling fractions (< 1) to a percentage."""
        percent = _parse_number(value, "battery_percent", row_index, errors)
        if percent is None:
            return None
        if percent < 1:
            percent *= 100
        return percent

    def _parse_grid_status(
        self, value: object, row_index: int, errors: List[RowError]
    ) -> Optional[GridStatus]:
        if _is_missing(value):
            errors.append(DataValidationError("grid_status", row_index, value))
            return None
        grid = GridStatus.parse(value)
        if grid is None:
            errors.append(
                UnclassifiedStateError(
                    f"Row {row_index}: unrecognized grid status {value!r}",
                    row_index=row_index,
                    field="grid_status",
                )
            )
        return grid

    def _classify_power_source(
        self,
        is_daytime: bool,
        grid: GridStatus,
        solar: Optional[float],
        demand: Optional[float],
        heavy_appliance: bool,
        alerts: List[Alert],
    ) -> Optional[PowerSource]:
        """
        Pick the supply for the load and append the matching alerts.

        Night rules only read the grid. Day rules compare solar to demand, so a
        day row with either cell unparsed has no power source.
        """
        if is_daytime and (solar is None or demand is None):
            return None

        if is_daytime and grid is GridStatus.NORMAL:
            return PowerSource.SOLAR if solar >= demand else PowerSource.SOLAR_GRID

        if is_daytime and grid.degraded:
            if solar >= demand:
                source = PowerSource.SOLAR
                alerts.append(
                    Alert("grid_unavailable_solar_only", "Grid power unavailable. Using solar only.")
                )
            else:
                source = PowerSource.SOLAR_BATTERY
                alerts.append(
                    Alert("battery_grid_issue", "Powering from battery due to grid issue.")
                )
            if heavy_appliance:
                alerts.append(
                    Alert(
                        "heavy_appliance_solar_backup",
                        "Warning: Heavy appliances running on solar backup.",
                    )
                )
            return source

        if not is_daytime and grid is GridStatus.NORMAL:
            return PowerSource.GRID

        if not is_daytime and grid.degraded:
            alerts.append(Alert("switched_to_battery", "Switched to battery."))
            if heavy_appliance:
                alerts.append(
                    Alert(
                        "heavy_appliance_battery_backup",
                        "Warning: Heavy appliances on battery backup. Consider turning off.",
                    )
                )
            return PowerSource.BATTERY

        raise UnclassifiedStateError(
            f"No power source rule for daytime={is_daytime} grid={grid.value}",
            field="power_source",
        )

    def _classify_battery_action(
        self,
        power_source: PowerSource,
        is_daytime: bool,
        grid: GridStatus,
        solar: Optional[float],
        demand: Optional[float],
        battery: Optional[float],
    ) -> Optional[BatteryAction]:
        """Battery action by strict rule priority; first match wins."""
        if power_source.uses_battery:
            return BatteryAction.DISCHARGING

        # The remaining rules all need the charge level
        if battery is None:
            return None

        if is_daytime and solar > demand and battery < 100:
            return BatteryAction.CHARGING

        if grid is GridStatus.NORMAL and battery < 100:
            return BatteryAction.CHARGING

        # Solar covers the load on a degraded grid but the battery is full
        # (or solar exactly matches demand)
        if grid.degraded and battery > self.config.low_battery_threshold_percent:
            return BatteryAction.DISCHARGING

        return BatteryAction.IDLE

    def _next_state(
        self, state: SessionState, battery_action: Optional[BatteryAction]
    ) -> SessionState:
        """Advance the cursor and count the start of each discharge run."""
        if battery_action is None:
            return replace(state, cursor=state.cursor + 1)

        cycles = state.discharge_cycles
        if (
            battery_action is BatteryAction.DISCHARGING
            and state.last_battery_action is not BatteryAction.DISCHARGING
        ):
            cycles += 1

        return SessionState(
            cursor=state.cursor + 1,
            discharge_cycles=cycles,
            last_battery_action=battery_action,
        )

    def _to_kwh(self, watts: float) -> float:
        # W over the slice -> kWh: W * (slice/3600) / 1000
        return (watts * self.config.hour_fraction) / 1000

    def _split_energy(
        self,
        power_source: Optional[PowerSource],
        solar: Optional[float],
        total_kwh: Optional[float],
    ) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        """Attribute the slice's consumption to solar, grid and battery."""
        if total_kwh is None:
            return None, None, None

        solar_kwh = grid_kwh = battery_kwh = 0.0

        if power_source is PowerSource.SOLAR:
            solar_kwh = total_kwh
        elif power_source is PowerSource.GRID:
            grid_kwh = total_kwh
        elif power_source is PowerSource.SOLAR_GRID:
            solar_kwh = self._to_kwh(solar)
            grid_kwh = total_kwh - solar_kwh
        elif power_source is PowerSource.SOLAR_BATTERY:
            solar_kwh = self._to_kwh(solar)
            battery_kwh = total_kwh - solar_kwh
        elif power_source is PowerSource.BATTERY:
            battery_kwh = total_kwh

        return solar_kwh, grid_kwh, battery_kwh

    def _estimate_backup_time(self, battery_percent: float, demand_watts: float) -> float:
        """Hours the battery alone could carry the current load."""
        load_kw = demand_watts / 1000
        if load_kw <= 0:
            return 0.0
        return ((battery_percent / 100) * self.config.battery_capacity_kwh) / load_kw


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _parse_number(
    value: object, field_name: str, row_index: int, errors: List[RowError]
) -> Optional[float]:
    """Parse a non-negative numeric cell, recording a validation error on failure."""
    if isinstance(value, bool) or _is_missing(value):
        errors.append(DataValidationError(field_name, row_index, value))
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        errors.append(DataValidationError(field_name, row_index, value))
        return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        errors.append(DataValidationError(field_name, row_index, value))
        return None
    return number


def _parse_bool(
    value: object, field_name: str, row_index: int, errors: List[RowError]
) -> Optional[bool]:
    """Parse a boolean cell (bool, 0/1, or true/false style strings)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _TRUE_STRINGS:
            return True
        if key in _FALSE_STRINGS:
            return False
    errors.append(DataValidationError(field_name, row_index, value))
    return None


def classify_row(
    raw: RawRow,
    state: SessionState,
    config: Optional[ClassifierConfig] = None,
) -> ClassificationResult:
    """
    Convenience function to classify a single row.

    Args:
        raw: Telemetry row
        state: Carried session state
        config: Classifier configuration

    Returns:
        ClassificationResult for the row
    """
    classifier = RowClassifier(config or ClassifierConfig())
    return classifier.classify(raw, state)
