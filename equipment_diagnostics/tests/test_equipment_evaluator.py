# equipment_diagnostics/tests/test_equipment_evaluator.py

from datetime import date

import pytest

from equipment_diagnostics.models.classification import Verdict
from equipment_diagnostics.models.component_status import (
    CRITICAL_DEFICIENCY,
    DATA_INCOMPLETE,
    OFFLINE,
    ONLINE,
    REPLACEMENT_RECOMMENDED,
)
from equipment_diagnostics.models.measurement import RawReading
from equipment_diagnostics.errors import UnsupportedEquipmentError
from equipment_diagnostics.tests.fake_readings import (
    battery_profile,
    fake_unit,
    make_evaluator,
    phase_readings,
    string_reading,
    ups_profile,
)


# ---------------------------------------------------------------------------
# Capacity equipment
# ---------------------------------------------------------------------------

def test_ups_output_voltages_and_load():
    evaluator = make_evaluator([ups_profile()])
    unit = fake_unit(
        "UPS-1",
        "UPS",
        phase_readings([208.0, 208.0, 208.0], [50.0, 50.0, 50.0]),
        manufacturer="liebert",
        model="nx",
        kva="20",
        output_voltage=208,
        phase_count=3,
    )

    result = evaluator.evaluate(unit)

    assert result.status == ONLINE
    output = result.components[0]
    assert output.component_id == "output"
    voltages = [c for c in output.classifications if c.measurement.kind.value == "voltage"]
    assert [c.measurement.display_value for c in voltages] == [120.09, 120.09, 120.09]
    assert all(c.verdict is Verdict.PASS for c in voltages)
    assert output.load.load_percentage == pytest.approx(90.07, abs=0.01)


def test_ups_without_rating_has_no_load():
    evaluator = make_evaluator([ups_profile()])
    unit = fake_unit("UPS-2", "ups", phase_readings([208.0], [50.0]), manufacturer="Liebert", model="NX")

    result = evaluator.evaluate(unit)

    assert result.components[0].load is None


def test_offline_unit_reports_offline():
    evaluator = make_evaluator([ups_profile()])
    unit = fake_unit("UPS-3", "ups", [], manufacturer="Liebert", model="NX", offline=True)

    result = evaluator.evaluate(unit)

    assert result.status == OFFLINE


# ---------------------------------------------------------------------------
# Batteries
# ---------------------------------------------------------------------------

def test_one_failed_cell_makes_battery_critical():
    evaluator = make_evaluator([battery_profile()])
    unit = fake_unit(
        "BATT-1",
        "battery",
        [
            string_reading("S1", [101, 99, 160, 100, 102, 98]),
            string_reading("S2", [100, 100, 100, 100, 100, 100]),
        ],
        manufacturer="Enersys",
        model="12HX505",
        reading_method="impedance",
    )

    result = evaluator.evaluate(unit)

    by_id = {c.component_id: c for c in result.components}
    assert by_id["S1"].rollup_status == CRITICAL_DEFICIENCY
    assert by_id["S2"].rollup_status == ONLINE
    assert result.status == CRITICAL_DEFICIENCY
    assert result.profile_match == "exact"


def test_battery_past_service_life():
    evaluator = make_evaluator([battery_profile()])
    unit = fake_unit(
        "BATT-2",
        "battery",
        [string_reading("S1", [100, 100])],
        manufacturer="Enersys",
        model="12HX505",
        reading_method="impedance",
        in_service_since=date(2018, 1, 1),
    )

    result = evaluator.evaluate(unit, today=date(2024, 1, 2))

    assert result.status == REPLACEMENT_RECOMMENDED


def test_unit_baseline_override_is_flagged():
    evaluator = make_evaluator([battery_profile()])
    unit = fake_unit(
        "BATT-3",
        "battery",
        [string_reading("S1", [135])],
        manufacturer="Enersys",
        model="12HX505",
        reading_method="impedance",
        unit_baseline=130.0,
    )

    result = evaluator.evaluate(unit)

    assert any("per-unit baseline" in note for note in result.notes)
    # Classification still uses the manufacturer/model baseline.
    assert result.classifications[0].deviation_pct == pytest.approx(35.0)


# ---------------------------------------------------------------------------
# Missing reference data and batch isolation
# ---------------------------------------------------------------------------

def test_unknown_model_is_data_incomplete():
    evaluator = make_evaluator([ups_profile()])
    unit = fake_unit("PDU-1", "pdu", [RawReading("A", "voltage", 120.0)], manufacturer="Acme", model="P1")

    result = evaluator.evaluate(unit)

    assert result.status == DATA_INCOMPLETE
    assert result.profile_match == "none"
    assert result.notes


def test_unsupported_family_raises_for_single_unit():
    evaluator = make_evaluator()

    with pytest.raises(UnsupportedEquipmentError):
        evaluator.evaluate(fake_unit("X-1", "toaster", []))


def test_batch_isolates_failures():
    evaluator = make_evaluator([ups_profile()])
    units = [
        fake_unit("BAD-1", "toaster", []),
        fake_unit("BAD-2", "ups", [RawReading("A", "humidity", 40)]),
        fake_unit("UPS-1", "ups", phase_readings([208.0], [10.0]), manufacturer="Liebert", model="NX"),
    ]

    results, errors = evaluator.evaluate_batch(units)

    assert [r.equipment_id for r in results] == ["UPS-1"]
    assert set(errors) == {"BAD-1", "BAD-2"}
