# equipment_diagnostics/models/equipment.py
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional

from equipment_diagnostics.models.measurement import RawReading


@dataclass
class EquipmentReadings:
    """Everything submitted for one equipment unit on one job."""

    equipment_id: str
    family: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    reading_method: Optional[str] = None
    readings: List[RawReading] = field(default_factory=list)
    job_id: Optional[str] = None
    kva: Any = None
    output_voltage: Any = None
    phase_count: Optional[int] = None
    load_group: str = "output"
    offline: bool = False
    in_service_since: Optional[date] = None
    unit_baseline: Optional[float] = None   # per-unit override, flagged for review
