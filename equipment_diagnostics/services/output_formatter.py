# equipment_diagnostics/services/output_formatter.py

from __future__ import annotations

import json
from typing import Iterable, Mapping, Optional

from equipment_diagnostics.models.classification import Classification
from equipment_diagnostics.models.component_status import ComponentStatus, EquipmentEvaluation, LoadSummary
from equipment_diagnostics.models.reconciliation import ReconciliationResult
from equipment_diagnostics.models.reference import ReferenceProfile
from equipment_diagnostics.services.reconciliation import legacy_flags


def _round(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def _classification_to_dict(c: Classification) -> dict:
    m = c.measurement
    return {
        "component_id": m.component_id,
        "kind": m.kind.value,
        "value": m.display_value,
        "unit": m.unit,
        "parent_id": m.parent_id,
        "position": m.position,
        "derived": m.derived,
        "verdict": c.verdict.value,
        "legacy_code": c.legacy_code,
        "deviation": _round(c.deviation),
        "deviation_pct": _round(c.deviation_pct),
        "rule": c.rule,
        "note": c.note,
    }


def _load_to_dict(load: LoadSummary | None) -> Optional[dict]:
    if load is None:
        return None
    return {
        "kva": load.kva,
        "voltage": load.voltage,
        "phase_count": load.phase_count,
        "max_current": _round(load.max_current),
        "per_phase_pct": {k: _round(v) for k, v in load.per_phase_pct.items()},
        "load_percentage": _round(load.load_percentage),
        "verdict": load.verdict.value,
    }


def _component_to_dict(comp: ComponentStatus) -> dict:
    return {
        "component_id": comp.component_id,
        "verdict": comp.rollup_verdict.value,
        "status": comp.rollup_status,
        "escalated": comp.escalated,
        "load": _load_to_dict(comp.load),
        "notes": list(comp.notes),
        "classifications": [_classification_to_dict(c) for c in comp.classifications],
    }


def evaluation_to_dict(evaluation: EquipmentEvaluation) -> dict:
    return {
        "equipment_id": evaluation.equipment_id,
        "family": evaluation.family,
        "job_id": evaluation.job_id,
        "status": evaluation.status,
        "profile_match": evaluation.profile_match,
        "notes": list(evaluation.notes),
        "components": [_component_to_dict(c) for c in evaluation.components],
    }


def reconciliation_to_dict(result: ReconciliationResult) -> dict:
    override = None
    if result.override is not None:
        override = {
            "reviewer": result.override.reviewer,
            "reason": result.override.reason,
            "timestamp": result.override.timestamp.isoformat(),
        }
    return {
        "equipment_id": result.equipment_id,
        "verified": result.verified,
        "discrepancy_count": result.discrepancy_count,
        "override": override,
        "fields": [
            {
                "field": f.field_name,
                "expected": f.expected_value,
                "reported": f.reported_value,
                "matches": f.matches,
            }
            for f in result.fields
        ],
        "legacy": legacy_flags(result),
    }


def profile_to_dict(profile: ReferenceProfile) -> dict:
    return {
        "equipment_family": profile.equipment_family,
        "manufacturer": profile.manufacturer,
        "model": profile.model,
        "reading_method": profile.reading_method,
        "match_level": profile.match_level,
        "neutral": profile.neutral,
        "baseline": profile.baseline_for_method(),
        "monitor_start_pct": profile.monitor_start_pct,
        "monitor_end_pct": profile.monitor_end_pct,
        "replace_pct": profile.replace_pct,
        "warning_bands": {k.value: [b.low, b.high] for k, b in profile.warning_bands.items()},
        "error_bands": {k.value: [b.low, b.high] for k, b in profile.error_bands.items()},
        "service_life_years": profile.service_life_years,
    }


def emit_json(
    evaluations: Iterable[EquipmentEvaluation] = (),
    reconciliations: Iterable[ReconciliationResult] = (),
    *,
    errors: Mapping[str, str] | None = None,
) -> None:
    result: dict = {}
    evaluations = list(evaluations)
    reconciliations = list(reconciliations)
    if evaluations:
        result["evaluations"] = [evaluation_to_dict(e) for e in evaluations]
    if reconciliations:
        result["reconciliations"] = [reconciliation_to_dict(r) for r in reconciliations]
    if errors:
        result["errors"] = dict(errors)
    print(json.dumps(result, indent=2, default=str))


def _format_classification(c: Classification) -> str:
    m = c.measurement
    value = f"{m.display_value:.2f}{m.unit}" if m.display_value is not None else "n/a"
    dev = f" dev={c.deviation_pct:+.2f}%" if c.deviation_pct is not None else ""
    note = f" ({c.note})" if c.note else ""
    return f"    {m.component_id} {m.kind.value}={value} {c.verdict.value}{dev}{note}"


def emit_human(
    evaluations: Iterable[EquipmentEvaluation] = (),
    reconciliations: Iterable[ReconciliationResult] = (),
    *,
    errors: Mapping[str, str] | None = None,
    verbose: bool = False,
) -> None:
    for ev in evaluations:
        print(f"[{ev.equipment_id}] {ev.family} status={ev.status} profile={ev.profile_match}")
        for note in ev.notes:
            print(f"  note: {note}")
        for comp in ev.components:
            load_txt = ""
            if comp.load is not None and comp.load.load_percentage is not None:
                load_txt = f" load={comp.load.load_percentage:.2f}%"
            print(f"  {comp.component_id}: {comp.rollup_status}{load_txt}")
            for note in comp.notes:
                print(f"    - {note}")
            for c in comp.classifications:
                if verbose or c.verdict.severity > 0:
                    print(_format_classification(c))

    for rec in reconciliations:
        state = "verified" if rec.verified else "NOT verified"
        if rec.overridden and rec.discrepancy_count:
            state += f" (override by {rec.override.reviewer})"
        print(f"[{rec.equipment_id}] reconciliation {state}, {rec.discrepancy_count} discrepancies")
        for f in rec.mismatches:
            print(f"  {f.field_name}: expected={f.expected_value!r} reported={f.reported_value!r}")

    for equipment_id, message in (errors or {}).items():
        print(f"[{equipment_id}] ERROR: {message}")
