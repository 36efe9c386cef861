# equipment_diagnostics/services/classifier.py

from __future__ import annotations

from typing import Any, Optional

from equipment_diagnostics.models.classification import Classification, Verdict
from equipment_diagnostics.models.measurement import Measurement, MeasurementKind
from equipment_diagnostics.models.reference import ReferenceProfile


# Kinds judged as a percentage of the reference baseline.
REFERENCE_RELATIVE_KINDS = frozenset({MeasurementKind.RESISTANCE})


class Classifier:
    """Compares one measurement against its reference profile."""

    def __init__(self, log: Any):
        self.log = log

    # ----------------------------------------------------------------------
    # Rule helpers
    # ----------------------------------------------------------------------
    def _incomplete(self, measurement: Measurement, note: str) -> Classification:
        return Classification(
            measurement=measurement,
            verdict=Verdict.INCOMPLETE,
            deviation_pct=None,
            deviation=None,
            rule="none",
            note=note,
        )

    def _reference_rule(
        self,
        measurement: Measurement,
        profile: ReferenceProfile,
        baseline: float,
    ) -> Classification:
        raw = measurement.raw_value
        deviation = raw - baseline
        deviation_pct = deviation / baseline * 100.0
        # Conductance falls as a cell ages; resistance rises.
        degradation = -deviation_pct if profile.is_conductance else deviation_pct

        replace_pct = profile.replace_pct
        monitor_start = profile.monitor_start_pct

        if replace_pct is not None and degradation > replace_pct:
            verdict, note = Verdict.ERROR, "replace"
        elif monitor_start is not None and degradation >= monitor_start:
            verdict, note = Verdict.WARNING, "monitor"
            monitor_end = profile.monitor_end_pct
            if monitor_end is not None and degradation > monitor_end:
                note = "monitor (beyond monitor window)"
        else:
            verdict, note = Verdict.PASS, None

        return Classification(
            measurement=measurement,
            verdict=verdict,
            deviation_pct=deviation_pct,
            deviation=deviation,
            rule="reference",
            note=note,
        )

    def _band_rule(self, measurement: Measurement, profile: ReferenceProfile) -> Optional[Classification]:
        error_band = profile.error_bands.get(measurement.kind)
        warning_band = profile.warning_bands.get(measurement.kind)
        if error_band is None and warning_band is None:
            return None

        raw = measurement.raw_value
        center = (warning_band or error_band).center

        deviation = raw - center if center is not None else None
        deviation_pct = None
        if deviation is not None and center:
            deviation_pct = deviation / center * 100.0

        if error_band is not None and not error_band.contains(raw):
            verdict = Verdict.ERROR
            note = f"outside error band {error_band.describe()}"
        elif warning_band is not None and not warning_band.contains(raw):
            verdict = Verdict.WARNING
            note = f"outside warning band {warning_band.describe()}"
        else:
            verdict, note = Verdict.PASS, None

        return Classification(
            measurement=measurement,
            verdict=verdict,
            deviation_pct=deviation_pct,
            deviation=deviation,
            rule="band",
            note=note,
        )

    # ----------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------
    def classify(self, measurement: Measurement, profile: ReferenceProfile) -> Classification:
        if measurement.raw_value is None:
            return self._incomplete(measurement, "reading missing or unparsable")

        if profile.neutral:
            return self._incomplete(measurement, "no reference data")

        if measurement.kind in REFERENCE_RELATIVE_KINDS and profile.has_degradation_thresholds:
            baseline = profile.baseline_for_method()
            if baseline is not None and baseline > 0:
                return self._reference_rule(measurement, profile, baseline)
            self.log.debug(
                "No usable %s baseline for %s; falling back to absolute bands",
                profile.reading_method or "reference",
                measurement.component_id,
            )

        result = self._band_rule(measurement, profile)
        if result is not None:
            return result

        return self._incomplete(measurement, f"no threshold for {measurement.kind.value}")
