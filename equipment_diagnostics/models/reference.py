# equipment_diagnostics/models/reference.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from equipment_diagnostics.models.measurement import MeasurementKind


class EquipmentFamily(str, Enum):
    BATTERY = "battery"
    UPS = "ups"
    PDU = "pdu"
    STS = "sts"
    ATS = "ats"
    SCC = "scc"
    RECTIFIER = "rectifier"


# Families whose load percentage is derived from the KVA rating.
CAPACITY_FAMILIES = frozenset({EquipmentFamily.UPS, EquipmentFamily.PDU, EquipmentFamily.STS})

CONDUCTANCE_METHODS = frozenset({"conductance", "1"})


@dataclass(frozen=True)
class Band:
    """Inclusive acceptance range; either side may be open."""

    low: Optional[float] = None
    high: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True

    @property
    def center(self) -> Optional[float]:
        if self.low is not None and self.high is not None:
            return (self.low + self.high) / 2.0
        return self.low if self.low is not None else self.high

    def describe(self) -> str:
        low = "-inf" if self.low is None else f"{self.low:g}"
        high = "+inf" if self.high is None else f"{self.high:g}"
        return f"[{low}, {high}]"

    @classmethod
    def parse(cls, raw: Any) -> Optional["Band"]:
        """Accept "low, high" strings, [low, high] pairs or {"low", "high"} maps."""
        if raw is None:
            return None
        if isinstance(raw, Band):
            return raw
        if isinstance(raw, Mapping):
            low, high = raw.get("low"), raw.get("high")
        elif isinstance(raw, str):
            parts = [p.strip() for p in raw.split(",")]
            if len(parts) != 2:
                raise ValueError(f"Band must be 'low, high', got {raw!r}")
            low, high = parts
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            low, high = raw
        else:
            raise ValueError(f"Unrecognised band value: {raw!r}")
        band = cls(low=_maybe_float(low), high=_maybe_float(high))
        if band.low is not None and band.high is not None and band.low > band.high:
            raise ValueError(f"Band low {band.low} exceeds high {band.high}")
        return band


def _maybe_float(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    return float(raw)


def _maybe_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _parse_bands(record: Mapping[str, Any], severity: str) -> Dict[MeasurementKind, Band]:
    bands: Dict[MeasurementKind, Band] = {}
    nested = record.get(f"{severity}_bands") or {}
    for kind_name, raw in nested.items():
        band = Band.parse(raw)
        if band is not None:
            bands[MeasurementKind(kind_name)] = band
    for kind in MeasurementKind:
        band = Band.parse(record.get(f"{kind.value}_{severity}_band"))
        if band is not None:
            bands[kind] = band
    return bands


@dataclass(frozen=True)
class ReferenceProfile:
    equipment_family: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    reading_method: Optional[str] = None
    baseline_value: Optional[float] = None
    monitor_start_pct: Optional[float] = None
    monitor_end_pct: Optional[float] = None
    replace_pct: Optional[float] = None
    error_bands: Dict[MeasurementKind, Band] = field(default_factory=dict)
    warning_bands: Dict[MeasurementKind, Band] = field(default_factory=dict)
    ref_value: Optional[float] = None      # conductance / capacity reference
    resistance: Optional[float] = None     # internal-resistance reference
    service_life_years: Optional[int] = None
    neutral: bool = False
    match_level: str = "exact"             # exact | model | family | none

    @property
    def is_conductance(self) -> bool:
        method = (self.reading_method or "").strip().lower()
        return method in CONDUCTANCE_METHODS

    def baseline_for_method(self) -> Optional[float]:
        if self.baseline_value is not None:
            return self.baseline_value
        if self.is_conductance:
            return self.ref_value
        return self.resistance

    @property
    def has_degradation_thresholds(self) -> bool:
        return self.replace_pct is not None or self.monitor_start_pct is not None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ReferenceProfile":
        family = _maybe_text(record.get("equipment_family") or record.get("family"))
        if family is None:
            raise ValueError("Reference profile record is missing equipment_family")
        life = record.get("service_life_years")
        return cls(
            equipment_family=family.lower(),
            manufacturer=_maybe_text(record.get("manufacturer")),
            model=_maybe_text(record.get("model")),
            reading_method=_maybe_text(record.get("reading_method")),
            baseline_value=_maybe_float(record.get("baseline_value")),
            monitor_start_pct=_maybe_float(record.get("monitor_start_pct")),
            monitor_end_pct=_maybe_float(record.get("monitor_end_pct")),
            replace_pct=_maybe_float(record.get("replace_pct")),
            error_bands=_parse_bands(record, "error"),
            warning_bands=_parse_bands(record, "warning"),
            ref_value=_maybe_float(record.get("ref_value")),
            resistance=_maybe_float(record.get("resistance")),
            service_life_years=int(life) if _maybe_text(life) is not None else None,
        )

    @classmethod
    def neutral_profile(
        cls,
        equipment_family: str,
        manufacturer: Optional[str] = None,
        model: Optional[str] = None,
        reading_method: Optional[str] = None,
    ) -> "ReferenceProfile":
        return cls(
            equipment_family=equipment_family,
            manufacturer=manufacturer,
            model=model,
            reading_method=reading_method,
            neutral=True,
            match_level="none",
        )
