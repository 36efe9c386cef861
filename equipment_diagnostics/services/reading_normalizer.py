# equipment_diagnostics/services/reading_normalizer.py

from __future__ import annotations

import math
from typing import Any, Iterable, List, Optional, Tuple

from equipment_diagnostics.errors import UnsupportedMeasurementError
from equipment_diagnostics.models.measurement import (
    DEFAULT_UNITS,
    Measurement,
    MeasurementKind,
    RawReading,
)


SQRT3 = math.sqrt(3.0)


def coerce_number(value: Any, *, zero_is_absent: bool = False) -> Optional[float]:
    """Parse a form value; anything unusable becomes None, never 0."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    if zero_is_absent and number == 0.0:
        return None
    return number


def phase_to_neutral(phase_to_phase_v: float) -> float:
    return phase_to_phase_v / SQRT3


def parse_kind(raw_kind: Any, component_id: str | None = None) -> MeasurementKind:
    if isinstance(raw_kind, MeasurementKind):
        return raw_kind
    key = str(raw_kind or "").strip().lower()
    try:
        return MeasurementKind(key)
    except ValueError:
        raise UnsupportedMeasurementError(raw_kind, component_id) from None


def _group_of(raw: RawReading) -> Optional[str]:
    # Strings with cell rows form their own aggregation unit.
    if raw.group:
        return raw.group
    return raw.component_id if raw.cells else None


class ReadingNormalizer:
    """
    Turns the technician's reading rows into canonical Measurements:
    numeric coercion, phase-to-neutral derivation and per-cell expansion.
    """

    def __init__(self, log: Any, *, treat_zero_as_absent: bool = False):
        self.log = log
        self.treat_zero_as_absent = treat_zero_as_absent

    def _coerce(self, value: Any) -> Optional[float]:
        return coerce_number(value, zero_is_absent=self.treat_zero_as_absent)

    # ----------------------------------------------------------------------
    # Voltage basis
    # ----------------------------------------------------------------------
    def _voltage_supplied(self, readings: List[RawReading], phase_to_phase: bool) -> set[Tuple[Optional[str], str]]:
        """(group, component) keys holding a usable voltage on the given basis."""
        supplied = set()
        for raw in readings:
            if parse_kind(raw.kind, raw.component_id) is not MeasurementKind.VOLTAGE:
                continue
            if bool(raw.phase_to_phase) == phase_to_phase and self._coerce(raw.value) is not None:
                supplied.add((_group_of(raw), raw.component_id))
        return supplied

    def _voltage_measurement(
        self,
        raw: RawReading,
        value: Optional[float],
        unit: str,
        require_phase_to_neutral: bool,
        neutral_supplied: set[Tuple[Optional[str], str]],
        derivable: set[Tuple[Optional[str], str]],
    ) -> Optional[Measurement]:
        key = (_group_of(raw), raw.component_id)
        if not require_phase_to_neutral:
            return Measurement(raw.component_id, MeasurementKind.VOLTAGE, value, unit, group=key[0])

        if not raw.phase_to_phase:
            # A blank phase-to-neutral column gives way to the derived value.
            if value is None and key in derivable:
                return None
            return Measurement(raw.component_id, MeasurementKind.VOLTAGE, value, unit, group=key[0])

        if key in neutral_supplied:
            self.log.debug(
                "Phase-to-neutral reading supplied for %s; ignoring phase-to-phase value",
                raw.component_id,
            )
            return None

        derived = phase_to_neutral(value) if value is not None else None
        if derived is not None:
            self.log.debug(
                "Derived phase-to-neutral %.2f V from %.2f V on %s",
                derived,
                value,
                raw.component_id,
            )
        return Measurement(
            raw.component_id,
            MeasurementKind.VOLTAGE,
            derived,
            unit,
            group=_group_of(raw),
            derived=True,
        )

    # ----------------------------------------------------------------------
    # Cell expansion
    # ----------------------------------------------------------------------
    def _expand_cells(self, raw: RawReading) -> List[Measurement]:
        group = _group_of(raw)
        out: List[Measurement] = []
        for position, cell in enumerate(raw.cells):
            for kind_name, cell_value in sorted(cell.values.items()):
                kind = parse_kind(kind_name, f"{raw.component_id}/{cell.cell_id}")
                out.append(
                    Measurement(
                        component_id=str(cell.cell_id),
                        kind=kind,
                        raw_value=self._coerce(cell_value),
                        unit=DEFAULT_UNITS[kind],
                        parent_id=raw.component_id,
                        group=group,
                        position=position,
                    )
                )
        return out

    # ----------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------
    def normalize(
        self,
        raw_readings: Iterable[RawReading],
        *,
        require_phase_to_neutral: bool = False,
    ) -> List[Measurement]:
        readings = list(raw_readings)
        neutral_supplied = self._voltage_supplied(readings, False) if require_phase_to_neutral else set()
        derivable = self._voltage_supplied(readings, True) if require_phase_to_neutral else set()
        measurements: List[Measurement] = []

        for raw in readings:
            kind = parse_kind(raw.kind, raw.component_id)
            unit = raw.unit or DEFAULT_UNITS[kind]

            # A string that only carries cell values has no string-level check.
            if not (raw.cells and raw.value is None):
                value = self._coerce(raw.value)
                if kind is MeasurementKind.VOLTAGE:
                    m = self._voltage_measurement(
                        raw, value, unit, require_phase_to_neutral, neutral_supplied, derivable
                    )
                else:
                    m = Measurement(raw.component_id, kind, value, unit, group=_group_of(raw))
                if m is not None:
                    measurements.append(m)

            if raw.cells:
                measurements.extend(self._expand_cells(raw))

        absent = sum(1 for m in measurements if m.is_absent)
        if absent:
            self.log.debug("%d of %d measurements absent after normalization", absent, len(measurements))
        return measurements

