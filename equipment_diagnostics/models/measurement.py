# equipment_diagnostics/models/measurement.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MeasurementKind(str, Enum):
    VOLTAGE = "voltage"
    CURRENT = "current"
    FREQUENCY = "frequency"
    RESISTANCE = "resistance"
    TEMPERATURE = "temperature"


DEFAULT_UNITS = {
    MeasurementKind.VOLTAGE: "V",
    MeasurementKind.CURRENT: "A",
    MeasurementKind.FREQUENCY: "Hz",
    MeasurementKind.RESISTANCE: "mOhm",
    MeasurementKind.TEMPERATURE: "F",
}


@dataclass
class RawCellReading:
    cell_id: str
    values: Dict[str, Any] = field(default_factory=dict)   # kind name -> raw value


@dataclass
class RawReading:
    """One row of the technician's reading form, before normalization."""

    component_id: str
    kind: str
    value: Any = None
    unit: str | None = None
    phase_to_phase: bool = False
    group: str | None = None
    cells: List[RawCellReading] = field(default_factory=list)


@dataclass(frozen=True)
class Measurement:
    component_id: str
    kind: MeasurementKind
    raw_value: Optional[float]   # None means absent; never defaulted
    unit: str
    parent_id: Optional[str] = None
    group: Optional[str] = None
    position: Optional[int] = None
    derived: bool = False

    @property
    def is_absent(self) -> bool:
        return self.raw_value is None

    @property
    def display_value(self) -> Optional[float]:
        if self.raw_value is None:
            return None
        return round(self.raw_value, 2)
