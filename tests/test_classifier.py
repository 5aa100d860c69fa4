"""
Tests for the Row Classifier

Power source and battery action rules, energy split, backup time and
row-level error reporting.
"""

import pytest

from replay.classifier import RowClassifier, classify_row
from replay.config import ClassifierConfig
from replay.errors import DataValidationError, UnclassifiedStateError
from replay.models import BatteryAction, GridStatus, PowerSource, SessionState

HOUR_FRACTION = 20 / 3600


def kwh(watts):
    return watts * HOUR_FRACTION / 1000


def alert_codes(row):
    return [alert.code for alert in row.alerts]


@pytest.fixture
def classifier():
    return RowClassifier(ClassifierConfig())


class TestGridStatusParsing:
    """Grid status spellings from recorded datasets."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("normal", GridStatus.NORMAL),
            ("Normal ", GridStatus.NORMAL),
            ("power_off", GridStatus.POWER_OFF),
            ("power off", GridStatus.POWER_OFF),
            ("Power-Off", GridStatus.POWER_OFF),
            ("voltage fluctuation", GridStatus.VOLTAGE_FLUCTUATION),
            ("brownout", None),
            (None, None),
            (3, None),
        ],
    )
    def test_parse(self, value, expected):
        assert GridStatus.parse(value) is expected


class TestPowerSource:
    """Every daytime x grid status combination."""

    @pytest.mark.parametrize(
        "is_daytime, grid, solar, demand, expected",
        [
            (True, "normal", 3000, 2000, PowerSource.SOLAR),
            (True, "normal", 2000, 2000, PowerSource.SOLAR),
            (True, "normal", 1000, 2000, PowerSource.SOLAR_GRID),
            (True, "power_off", 3000, 2000, PowerSource.SOLAR),
            (True, "power_off", 1000, 2000, PowerSource.SOLAR_BATTERY),
            (True, "voltage_fluctuation", 3000, 2000, PowerSource.SOLAR),
            (True, "voltage_fluctuation", 1000, 2000, PowerSource.SOLAR_BATTERY),
            (False, "normal", 0, 2000, PowerSource.GRID),
            (False, "power_off", 0, 2000, PowerSource.BATTERY),
            (False, "voltage_fluctuation", 0, 2000, PowerSource.BATTERY),
        ],
    )
    def test_classification_matrix(self, classifier, make_raw, is_daytime, grid, solar, demand, expected):
        raw = make_raw(is_daytime=is_daytime, grid_status=grid, solar=solar, demand=demand)
        result = classifier.classify(raw, SessionState())
        assert result.row.power_source is expected
        assert result.errors == []

    def test_day_normal_has_no_alerts(self, classifier, make_raw):
        result = classifier.classify(make_raw(heavy=True), SessionState())
        assert result.row.alerts == ()

    def test_day_outage_solar_covers_load(self, classifier, make_raw):
        raw = make_raw(grid_status="power_off", solar=3000, demand=2000)
        row = classifier.classify(raw, SessionState()).row
        assert alert_codes(row) == ["grid_unavailable_solar_only"]
        assert row.alerts[0].message == "Grid power unavailable. Using solar only."

    def test_day_outage_with_heavy_appliance(self, classifier, make_raw):
        raw = make_raw(grid_status="voltage_fluctuation", solar=1000, demand=2000, heavy=True)
        row = classifier.classify(raw, SessionState()).row
        assert alert_codes(row) == ["battery_grid_issue", "heavy_appliance_solar_backup"]

    def test_night_outage_with_heavy_appliance(self, classifier, make_raw):
        """Night outage: battery supplies the load, both warnings raised in order."""
        raw = make_raw(is_daytime=False, grid_status="power_off", solar=0, battery=50, heavy=True)
        result = classifier.classify(raw, SessionState())

        assert result.row.power_source is PowerSource.BATTERY
        assert result.row.battery_action is BatteryAction.DISCHARGING
        assert alert_codes(result.row) == ["switched_to_battery", "heavy_appliance_battery_backup"]
        assert result.state.discharge_cycles == 1

    def test_unrecognized_grid_status_is_reported(self, classifier, make_raw):
        raw = make_raw(grid_status="brownout")
        result = classifier.classify(raw, SessionState(cursor=4))

        assert result.row.power_source is None
        assert result.row.battery_action is None
        assert len(result.errors) == 1
        error = result.errors[0]
        assert isinstance(error, UnclassifiedStateError)
        assert error.row_index == 4
        assert error.field == "grid_status"

    def test_unrecognized_grid_status_leaves_contributions_zero(self, classifier, make_raw):
        result = classifier.classify(make_raw(grid_status="brownout", demand=1800), SessionState())
        row = result.row
        assert row.solar_contribution == 0.0
        assert row.grid_contribution == 0.0
        assert row.battery_contribution == 0.0
        assert row.total_consumption_kwh == pytest.approx(kwh(1800))


class TestBatteryNormalization:
    """battery_percent may arrive as a fraction or a percentage."""

    def test_fraction_is_scaled(self, classifier, make_raw):
        row = classifier.classify(make_raw(battery=0.15), SessionState()).row
        assert row.battery_percent == pytest.approx(15)
        assert "battery_low" in alert_codes(row)
        assert row.alerts[-1].message == "Battery Low: 15%"

    def test_percentage_kept(self, classifier, make_raw):
        row = classifier.classify(make_raw(battery=65), SessionState()).row
        assert row.battery_percent == 65
        assert "battery_low" not in alert_codes(row)

    def test_string_fraction(self, classifier, make_raw):
        row = classifier.classify(make_raw(battery="0.5"), SessionState()).row
        assert row.battery_percent == pytest.approx(50)

    def test_low_battery_threshold_is_exclusive(self, classifier, make_raw):
        row = classifier.classify(make_raw(battery=28), SessionState()).row
        assert "battery_low" not in alert_codes(row)

    def test_low_battery_alert_follows_source_alerts(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", battery=10)
        row = classifier.classify(raw, SessionState()).row
        assert alert_codes(row) == ["switched_to_battery", "battery_low"]


class TestBatteryAction:
    """Battery action rules in priority order."""

    def test_battery_sources_discharge(self, classifier, make_raw):
        raw = make_raw(grid_status="power_off", solar=500, demand=2000, battery=100)
        row = classifier.classify(raw, SessionState()).row
        assert row.power_source is PowerSource.SOLAR_BATTERY
        assert row.battery_action is BatteryAction.DISCHARGING

    def test_surplus_solar_charges(self, classifier, make_raw):
        row = classifier.classify(make_raw(solar=3000, demand=2000, battery=50), SessionState()).row
        assert row.battery_action is BatteryAction.CHARGING

    def test_normal_grid_charges(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, solar=0, battery=60)
        row = classifier.classify(raw, SessionState()).row
        assert row.power_source is PowerSource.GRID
        assert row.battery_action is BatteryAction.CHARGING

    def test_full_battery_on_normal_grid_idles(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, solar=0, battery=100)
        row = classifier.classify(raw, SessionState()).row
        assert row.battery_action is BatteryAction.IDLE

    def test_full_battery_on_degraded_grid_discharges(self, classifier, make_raw):
        """Solar covers the load during an outage but the battery is full."""
        raw = make_raw(grid_status="power_off", solar=3000, demand=2000, battery=100)
        result = classifier.classify(raw, SessionState())

        assert result.row.power_source is PowerSource.SOLAR
        assert result.row.battery_action is BatteryAction.DISCHARGING
        assert result.state.discharge_cycles == 1

    def test_solar_equal_to_demand_on_degraded_grid(self, classifier, make_raw):
        raw = make_raw(grid_status="voltage_fluctuation", solar=2000, demand=2000, battery=60)
        row = classifier.classify(raw, SessionState()).row
        assert row.battery_action is BatteryAction.DISCHARGING

    def test_low_battery_on_degraded_grid_idles(self, classifier, make_raw):
        raw = make_raw(grid_status="voltage_fluctuation", solar=2000, demand=2000, battery=20)
        row = classifier.classify(raw, SessionState()).row
        assert row.battery_action is BatteryAction.IDLE

    def test_cycle_counted_once_per_run(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off")
        state = SessionState(discharge_cycles=2, last_battery_action=BatteryAction.DISCHARGING)
        result = classifier.classify(raw, state)
        assert result.state.discharge_cycles == 2
        assert result.row.discharge_cycles == 2

    def test_cycle_counted_on_transition(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off")
        state = SessionState(discharge_cycles=2, last_battery_action=BatteryAction.CHARGING)
        result = classifier.classify(raw, state)
        assert result.state.discharge_cycles == 3
        assert result.state.last_battery_action is BatteryAction.DISCHARGING

    def test_state_cursor_advances(self, classifier, make_raw):
        result = classifier.classify(make_raw(), SessionState(cursor=7))
        assert result.row.row_index == 7
        assert result.state.cursor == 8
        assert result.state.last_battery_action is BatteryAction.CHARGING


class TestEfficiency:
    def test_uses_updated_cycle_count(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off")
        row = classifier.classify(raw, SessionState(discharge_cycles=2)).row
        assert row.discharge_cycles == 3
        assert row.battery_efficiency == pytest.approx(99.4)

    def test_not_clamped(self, classifier, make_raw):
        row = classifier.classify(make_raw(), SessionState(discharge_cycles=600)).row
        assert row.battery_efficiency == pytest.approx(-20.0)

    def test_custom_loss_per_cycle(self, make_raw):
        config = ClassifierConfig(efficiency_loss_per_cycle_percent=0.5)
        row = classify_row(make_raw(), SessionState(discharge_cycles=4), config).row
        assert row.battery_efficiency == pytest.approx(98.0)


class TestEnergySplit:
    def test_solar_covers_all(self, classifier, make_raw):
        """Daytime, normal grid, surplus solar: everything attributed to solar."""
        row = classifier.classify(make_raw(solar=3000, demand=2000), SessionState()).row
        assert row.power_source is PowerSource.SOLAR
        assert row.total_consumption_kwh == pytest.approx(kwh(2000))
        assert row.solar_contribution == row.total_consumption_kwh
        assert row.grid_contribution == 0
        assert row.battery_contribution == 0

    def test_solar_plus_grid(self, classifier, make_raw):
        row = classifier.classify(make_raw(solar=1000, demand=2000), SessionState()).row
        assert row.solar_contribution == pytest.approx(kwh(1000))
        assert row.grid_contribution == pytest.approx(kwh(1000))
        assert row.battery_contribution == 0

    def test_solar_plus_battery(self, classifier, make_raw):
        raw = make_raw(grid_status="power_off", solar=500, demand=2000)
        row = classifier.classify(raw, SessionState()).row
        assert row.solar_contribution == pytest.approx(kwh(500))
        assert row.battery_contribution == pytest.approx(kwh(1500))
        assert row.grid_contribution == 0

    def test_grid_only(self, classifier, make_raw):
        row = classifier.classify(make_raw(is_daytime=False, solar=0), SessionState()).row
        assert row.grid_contribution == pytest.approx(kwh(2000))
        assert row.solar_contribution == 0

    def test_battery_only(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", solar=0, demand=900)
        row = classifier.classify(raw, SessionState()).row
        assert row.battery_contribution == pytest.approx(kwh(900))

    def test_contributions_sum_to_total(self, classifier, make_raw):
        for raw in (
            make_raw(solar=1200, demand=2500),
            make_raw(grid_status="power_off", solar=300, demand=1200),
            make_raw(is_daytime=False, grid_status="voltage_fluctuation", solar=0),
        ):
            row = classifier.classify(raw, SessionState()).row
            total = row.solar_contribution + row.grid_contribution + row.battery_contribution
            assert total == pytest.approx(row.total_consumption_kwh)

    def test_custom_slice_length(self, make_raw):
        config = ClassifierConfig(slice_seconds=3600)
        row = classify_row(make_raw(is_daytime=False, solar=0, demand=1500), SessionState(), config).row
        assert row.total_consumption_kwh == pytest.approx(1.5)


class TestBackupTime:
    def test_backup_hours(self, classifier, make_raw):
        row = classifier.classify(make_raw(battery=50, demand=2000), SessionState()).row
        # 50% of 10 kWh at 2 kW
        assert row.estimated_battery_backup_time == pytest.approx(2.5)

    def test_zero_demand(self, classifier, make_raw):
        row = classifier.classify(make_raw(demand=0), SessionState()).row
        assert row.estimated_battery_backup_time == 0

    def test_capacity_from_config(self, make_raw):
        config = ClassifierConfig(battery_capacity_kwh=27.0)
        row = classify_row(make_raw(battery=100, demand=2700), SessionState(), config).row
        assert row.estimated_battery_backup_time == pytest.approx(10.0)


class TestValidation:
    """Malformed cells are reported without aborting classification."""

    def test_non_numeric_demand(self, classifier, make_raw):
        result = classifier.classify(make_raw(demand="lots"), SessionState(cursor=3))
        row = result.row

        assert [e.field for e in result.errors] == ["household_power_demand_watts"]
        assert isinstance(result.errors[0], DataValidationError)
        assert result.errors[0].row_index == 3
        assert row.power_source is None
        assert row.total_consumption_kwh is None
        assert row.solar_contribution is None
        assert row.estimated_battery_backup_time is None
        # Battery-derived fields still computed
        assert row.battery_percent == 50

    def test_invalid_battery_keeps_power_source(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="normal", solar=0, battery="n/a")
        result = classifier.classify(raw, SessionState(last_battery_action=BatteryAction.IDLE))

        assert [e.field for e in result.errors] == ["battery_percent"]
        assert result.row.power_source is PowerSource.GRID
        assert result.row.battery_action is None
        assert result.row.estimated_battery_backup_time is None
        assert result.row.grid_contribution == pytest.approx(kwh(2000))
        # Undetermined action leaves the carried action alone
        assert result.state.last_battery_action is BatteryAction.IDLE
        assert result.state.cursor == 1

    def test_invalid_battery_on_battery_source_still_discharges(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", battery=None)
        result = classifier.classify(raw, SessionState())
        assert result.row.battery_action is BatteryAction.DISCHARGING
        assert result.state.discharge_cycles == 1

    def test_missing_grid_status_is_validation_error(self, classifier, make_raw):
        result = classifier.classify(make_raw(grid_status=None), SessionState())
        assert isinstance(result.errors[0], DataValidationError)
        assert result.errors[0].field == "grid_status"

    def test_negative_solar_rejected(self, classifier, make_raw):
        result = classifier.classify(make_raw(solar=-5), SessionState())
        assert [e.field for e in result.errors] == ["solar_input_watts"]
        assert result.row.power_source is None

    def test_night_outage_ignores_blank_solar(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", solar=None, battery=50)
        result = classifier.classify(raw, SessionState())
        row = result.row

        assert [e.field for e in result.errors] == ["solar_input_watts"]
        assert row.power_source is PowerSource.BATTERY
        assert alert_codes(row) == ["switched_to_battery"]
        assert row.battery_action is BatteryAction.DISCHARGING
        assert result.state.discharge_cycles == 1
        assert row.battery_efficiency == pytest.approx(99.8)
        assert row.battery_contribution == pytest.approx(kwh(2000))
        assert row.solar_contribution == 0
        assert row.grid_contribution == 0
        assert (
            row.solar_contribution + row.grid_contribution + row.battery_contribution
            == pytest.approx(row.total_consumption_kwh)
        )

    def test_night_outage_with_blank_demand(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", solar=0, demand="")
        result = classifier.classify(raw, SessionState())
        row = result.row

        assert [e.field for e in result.errors] == ["household_power_demand_watts"]
        assert row.power_source is PowerSource.BATTERY
        assert row.battery_action is BatteryAction.DISCHARGING
        assert result.state.discharge_cycles == 1
        assert row.total_consumption_kwh is None
        assert row.battery_contribution is None
        assert row.estimated_battery_backup_time is None

    def test_night_grid_ignores_blank_solar(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="normal", solar=None, battery=50)
        row = classifier.classify(raw, SessionState()).row
        assert row.power_source is PowerSource.GRID
        assert row.battery_action is BatteryAction.CHARGING
        assert row.grid_contribution == pytest.approx(kwh(2000))

    def test_day_row_with_blank_solar_is_unclassified(self, classifier, make_raw):
        result = classifier.classify(make_raw(solar=None), SessionState())
        assert [e.field for e in result.errors] == ["solar_input_watts"]
        assert result.row.power_source is None
        assert result.row.battery_action is None

    @pytest.mark.parametrize("value, expected", [("TRUE", True), ("no", False), (1, True), (0.0, False)])
    def test_boolean_cells(self, classifier, make_raw, value, expected):
        raw = make_raw(is_daytime=value, solar=0, grid_status="power_off")
        row = classifier.classify(raw, SessionState()).row
        expected_source = PowerSource.SOLAR_BATTERY if expected else PowerSource.BATTERY
        assert row.power_source is expected_source

    def test_unparseable_boolean(self, classifier, make_raw):
        result = classifier.classify(make_raw(is_daytime="maybe"), SessionState())
        assert [e.field for e in result.errors] == ["is_daytime"]
        assert result.row.power_source is None

    def test_error_serializes(self, classifier, make_raw):
        result = classifier.classify(make_raw(demand="x"), SessionState(cursor=2))
        data = result.errors[0].to_dict()
        assert data["type"] == "DataValidationError"
        assert data["row_index"] == 2
        assert data["field"] == "household_power_demand_watts"


class TestAnnotatedRowSerialization:
    def test_to_dict_keeps_structured_alerts(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", battery=0.1, site="A")
        data = classifier.classify(raw, SessionState()).row.to_dict()

        assert data["power_source"] == "Battery"
        assert data["battery_action"] == "Discharging"
        assert data["site"] == "A"
        assert data["battery_percent"] == pytest.approx(10)
        assert [a["code"] for a in data["alerts"]] == ["switched_to_battery", "battery_low"]

    def test_to_record_joins_alerts(self, classifier, make_raw):
        raw = make_raw(is_daytime=False, grid_status="power_off", heavy=True)
        record = classifier.classify(raw, SessionState()).row.to_record()
        assert record["alerts"] == (
            "Switched to battery., "
            "Warning: Heavy appliances on battery backup. Consider turning off."
        )

    def test_empty_alerts(self, classifier, make_raw):
        row = classifier.classify(make_raw(), SessionState()).row
        assert row.alerts == ()
        assert row.to_dict()["alerts"] == []
        assert row.to_record()["alerts"] == ""
