# equipment_diagnostics/models/reconciliation.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class EquipmentIdentity:
    make: Optional[str] = None
    model: Optional[str] = None
    serial_no: Optional[str] = None
    kva: Optional[Any] = None
    string_count: Optional[Any] = None
    batteries_per_string: Optional[Any] = None
    total_equipment_count: Optional[Any] = None


@dataclass(frozen=True)
class ReconciliationField:
    field_name: str
    expected_value: Any
    reported_value: Any
    matches: bool


@dataclass(frozen=True)
class ReconciliationOverride:
    """Reviewer sign-off that marks a unit verified despite mismatches."""

    reviewer: str
    reason: str
    timestamp: datetime


@dataclass(frozen=True)
class ReconciliationResult:
    equipment_id: str
    fields: Tuple[ReconciliationField, ...]
    verified: bool
    discrepancy_count: int
    override: Optional[ReconciliationOverride] = None

    @property
    def overridden(self) -> bool:
        return self.override is not None

    @property
    def mismatches(self) -> Tuple[ReconciliationField, ...]:
        return tuple(f for f in self.fields if not f.matches)
