# equipment_diagnostics/services/readings_loader.py

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from equipment_diagnostics.errors import EvaluationError
from equipment_diagnostics.models.equipment import EquipmentReadings
from equipment_diagnostics.models.measurement import RawCellReading, RawReading
from equipment_diagnostics.models.reconciliation import EquipmentIdentity, ReconciliationOverride
from equipment_diagnostics.services.reconciliation import (
    expected_from_legacy_form,
    reported_from_legacy_form,
)


ReconciliationItem = Tuple[str, EquipmentIdentity, EquipmentIdentity, Optional[ReconciliationOverride]]


def _read_json(path: str) -> Any:
    target = Path(path).expanduser()
    with target.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return bool(value)


def _parse_date(raw: Any) -> Optional[date]:
    if raw in (None, ""):
        return None
    if isinstance(raw, date):
        return raw
    try:
        return datetime.fromisoformat(str(raw).strip()).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date {raw!r}") from exc


def _entries(data: Any, key: str) -> List[Mapping[str, Any]]:
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of {key}")
    return data


# ----------------------------------------------------------------------
# Readings
# ----------------------------------------------------------------------
def parse_reading(entry: Mapping[str, Any]) -> RawReading:
    cells = [
        RawCellReading(cell_id=str(c.get("cell_id", i + 1)), values=dict(c.get("values") or {}))
        for i, c in enumerate(entry.get("cells") or [])
    ]
    return RawReading(
        component_id=str(entry.get("component_id") or entry.get("component") or ""),
        kind=str(entry.get("kind") or ""),
        value=entry.get("value"),
        unit=entry.get("unit"),
        phase_to_phase=_as_bool(entry.get("phase_to_phase", False)),
        group=entry.get("group"),
        cells=cells,
    )


def _field(equipment_id: str, name: str, raw: Any, convert) -> Any:
    if raw in (None, ""):
        return None
    try:
        return convert(raw)
    except (TypeError, ValueError) as exc:
        raise EvaluationError(f"{equipment_id}: invalid {name} {raw!r}") from exc


def parse_equipment(entry: Mapping[str, Any], job_id: Optional[str] = None) -> EquipmentReadings:
    if not isinstance(entry, Mapping):
        raise EvaluationError(f"Equipment entry must be an object, got {entry!r}")
    equipment_id = entry.get("equipment_id")
    if not equipment_id:
        raise EvaluationError("Equipment entry without equipment_id")
    equipment_id = str(equipment_id)

    readings = entry.get("readings") or []
    if not isinstance(readings, list) or not all(isinstance(r, Mapping) for r in readings):
        raise EvaluationError(f"{equipment_id}: readings must be a list of objects")
    try:
        parsed = [parse_reading(r) for r in readings]
    except (AttributeError, TypeError) as exc:
        raise EvaluationError(f"{equipment_id}: malformed reading row ({exc})") from exc

    return EquipmentReadings(
        equipment_id=equipment_id,
        family=str(entry.get("family") or entry.get("equipment_family") or ""),
        manufacturer=entry.get("manufacturer"),
        model=entry.get("model"),
        reading_method=entry.get("reading_method"),
        readings=parsed,
        job_id=entry.get("job_id") or job_id,
        kva=entry.get("kva"),
        output_voltage=entry.get("output_voltage"),
        phase_count=_field(equipment_id, "phase_count", entry.get("phase_count"), int),
        load_group=entry.get("load_group") or "output",
        offline=_as_bool(entry.get("offline", False)),
        in_service_since=_field(equipment_id, "in_service_since", entry.get("in_service_since"), _parse_date),
        unit_baseline=_field(equipment_id, "unit_baseline", entry.get("unit_baseline"), float),
    )


def load_readings(path: str) -> Tuple[List[EquipmentReadings], Dict[str, str]]:
    """
    Load ``{"job_id": ..., "equipment": [...]}`` or a bare list of units.

    Entries that cannot be parsed are returned as errors keyed by their
    equipment_id (or ``#<index>`` without one) so the rest still load.
    """
    data = _read_json(path)
    job_id = data.get("job_id") if isinstance(data, dict) else None
    units: List[EquipmentReadings] = []
    errors: Dict[str, str] = {}
    for index, entry in enumerate(_entries(data, "equipment")):
        try:
            units.append(parse_equipment(entry, job_id))
        except EvaluationError as exc:
            key = entry.get("equipment_id") if isinstance(entry, Mapping) else None
            errors[str(key or f"#{index}")] = str(exc)
    return units, errors


# ----------------------------------------------------------------------
# Reconciliation
# ----------------------------------------------------------------------
def parse_identity(entry: Optional[Mapping[str, Any]]) -> EquipmentIdentity:
    entry = entry or {}
    return EquipmentIdentity(
        make=entry.get("make"),
        model=entry.get("model"),
        serial_no=entry.get("serial_no"),
        kva=entry.get("kva"),
        string_count=entry.get("string_count"),
        batteries_per_string=entry.get("batteries_per_string"),
        total_equipment_count=entry.get("total_equipment_count"),
    )


def parse_override(entry: Optional[Mapping[str, Any]]) -> Optional[ReconciliationOverride]:
    if not entry:
        return None
    reviewer = str(entry.get("reviewer") or "").strip()
    if not reviewer:
        raise ValueError("Reconciliation override requires a reviewer")
    raw_ts = entry.get("timestamp")
    timestamp = datetime.fromisoformat(raw_ts) if raw_ts else datetime.now()
    return ReconciliationOverride(
        reviewer=reviewer,
        reason=str(entry.get("reason") or ""),
        timestamp=timestamp,
    )


def parse_reconciliation(entry: Mapping[str, Any]) -> ReconciliationItem:
    equipment_id = str(entry.get("equipment_id") or "")
    if "legacy_form" in entry:
        form: Dict[str, Any] = dict(entry["legacy_form"] or {})
        expected = expected_from_legacy_form(form)
        reported = reported_from_legacy_form(expected, form)
    else:
        expected = parse_identity(entry.get("expected"))
        reported = parse_identity(entry.get("reported"))
    return equipment_id, expected, reported, parse_override(entry.get("override"))


def load_reconciliations(path: str) -> List[ReconciliationItem]:
    return [parse_reconciliation(e) for e in _entries(_read_json(path), "items")]
