import pytest

from equipment_diagnostics.models.classification import Verdict
from equipment_diagnostics.models.measurement import Measurement, MeasurementKind
from equipment_diagnostics.models.reference import ReferenceProfile
from equipment_diagnostics.services.classifier import Classifier
from equipment_diagnostics.tests.fake_readings import battery_profile, quiet_log, ups_profile


def _classifier():
    return Classifier(quiet_log())


def _m(kind, value, component_id="C1"):
    return Measurement(component_id, kind, value, "x")


def _resistance(value):
    return _m(MeasurementKind.RESISTANCE, value)


# ---------------------------------------------------------------------------
# Reference-relative (battery impedance / conductance)
# ---------------------------------------------------------------------------

def test_thirty_five_percent_rise_is_monitor_warning():
    result = _classifier().classify(_resistance(135.0), battery_profile())

    assert result.verdict is Verdict.WARNING
    assert result.note == "monitor"
    assert result.rule == "reference"
    assert result.deviation_pct == pytest.approx(35.0)
    assert result.legacy_code == "W"


@pytest.mark.parametrize(
    "value, verdict",
    [
        (100.0, Verdict.PASS),
        (119.9, Verdict.PASS),
        (120.0, Verdict.WARNING),
        (150.0, Verdict.WARNING),
        (150.1, Verdict.ERROR),
        (80.0, Verdict.PASS),
    ],
)
def test_resistance_threshold_edges(value, verdict):
    assert _classifier().classify(_resistance(value), battery_profile()).verdict is verdict


def test_between_monitor_end_and_replace_is_flagged():
    result = _classifier().classify(_resistance(145.0), battery_profile())

    assert result.verdict is Verdict.WARNING
    assert result.note == "monitor (beyond monitor window)"


def test_conductance_degrades_downwards():
    profile = battery_profile(reading_method="conductance", ref_value=1000.0)
    classifier = _classifier()

    falling = classifier.classify(_resistance(700.0), profile)
    rising = classifier.classify(_resistance(1300.0), profile)

    assert falling.verdict is Verdict.WARNING
    assert falling.deviation_pct == pytest.approx(-30.0)
    assert rising.verdict is Verdict.PASS


def test_explicit_baseline_beats_reference_values():
    profile = battery_profile(baseline_value=200.0)

    result = _classifier().classify(_resistance(210.0), profile)

    assert result.verdict is Verdict.PASS
    assert result.deviation_pct == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# Absolute bands
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "value, verdict",
    [
        (60.0, Verdict.PASS),
        (60.5, Verdict.PASS),
        (61.0, Verdict.WARNING),
        (62.0, Verdict.WARNING),
        (57.9, Verdict.ERROR),
        (63.0, Verdict.ERROR),
    ],
)
def test_frequency_bands(value, verdict):
    result = _classifier().classify(_m(MeasurementKind.FREQUENCY, value), ups_profile())

    assert result.verdict is verdict
    assert result.rule == "band"


def test_band_deviation_is_against_center():
    result = _classifier().classify(_m(MeasurementKind.FREQUENCY, 61.0), ups_profile())

    assert result.deviation == pytest.approx(1.0)
    assert result.deviation_pct == pytest.approx(100.0 / 60.0)


def test_warning_band_only_profile():
    result = _classifier().classify(_m(MeasurementKind.TEMPERATURE, 80.0), ups_profile())

    assert result.verdict is Verdict.WARNING


# ---------------------------------------------------------------------------
# Incomplete
# ---------------------------------------------------------------------------

def test_absent_reading_is_incomplete_not_error():
    result = _classifier().classify(_resistance(None), battery_profile())

    assert result.verdict is Verdict.INCOMPLETE
    assert result.deviation_pct is None
    assert result.legacy_code == ""


def test_neutral_profile_is_incomplete():
    profile = ReferenceProfile.neutral_profile("ups")

    result = _classifier().classify(_m(MeasurementKind.VOLTAGE, 120.0), profile)

    assert result.verdict is Verdict.INCOMPLETE


def test_kind_without_threshold_is_incomplete():
    result = _classifier().classify(_m(MeasurementKind.CURRENT, 50.0), battery_profile())

    assert result.verdict is Verdict.INCOMPLETE
    assert "current" in result.note


def test_legacy_codes_decode_into_verdicts():
    assert Verdict.from_legacy("P") is Verdict.PASS
    assert Verdict.from_legacy(" y ") is Verdict.PASS
    assert Verdict.from_legacy("F") is Verdict.ERROR
    assert Verdict.from_legacy("N") is Verdict.ERROR
    assert Verdict.from_legacy("W") is Verdict.WARNING
    assert Verdict.from_legacy(None) is Verdict.INCOMPLETE


def test_missing_baseline_falls_back_to_resistance_band():
    profile = battery_profile(resistance=None, resistance_warning_band="0, 5")

    result = _classifier().classify(_resistance(6.0), profile)

    assert result.rule == "band"
    assert result.verdict is Verdict.WARNING


def test_legacy_boolean_spellings():
    assert Verdict.from_legacy("yes") is Verdict.PASS
    assert Verdict.from_legacy("TRUE") is Verdict.PASS
    assert Verdict.from_legacy("1") is Verdict.PASS
    assert Verdict.from_legacy("No") is Verdict.ERROR
    assert Verdict.from_legacy("false") is Verdict.ERROR
    assert Verdict.from_legacy("0") is Verdict.ERROR
    assert Verdict.from_legacy("") is Verdict.INCOMPLETE
