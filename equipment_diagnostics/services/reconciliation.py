# equipment_diagnostics/services/reconciliation.py

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from equipment_diagnostics.models.classification import Verdict
from equipment_diagnostics.models.reconciliation import (
    EquipmentIdentity,
    ReconciliationField,
    ReconciliationOverride,
    ReconciliationResult,
)
from equipment_diagnostics.services.reading_normalizer import coerce_number


# field name -> (identity attribute, numeric?)
FIELD_SPECS: Dict[str, Tuple[str, bool]] = {
    "Make": ("make", False),
    "Model": ("model", False),
    "SerialNo": ("serial_no", False),
    "KVA": ("kva", True),
    "StringCount": ("string_count", True),
    "BatteriesPerString": ("batteries_per_string", True),
    "TotalEquipmentCount": ("total_equipment_count", True),
}

# field name -> (expected column, correct-flag column, actual-value column)
LEGACY_COLUMNS: Dict[str, Tuple[str, str, str]] = {
    "Make": ("Make", "MakeCorrect", "ActMake"),
    "Model": ("Model", "ModelCorrect", "ActModel"),
    "SerialNo": ("SerialNo", "SerialNoCorrect", "ActSerialNo"),
    "KVA": ("KVA", "KVACorrect", "ActKVA"),
    "StringCount": ("ASCStringsNo", "ASCStringsCorrect", "ActASCStringNo"),
    "BatteriesPerString": ("BattPerString", "BattPerStringCorrect", "ActBattPerString"),
    "TotalEquipmentCount": ("TotalEquips", "TotalEquipsCorrect", "ActTotalEquips"),
}


def _text_key(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().casefold()
    return text or None


def _numeric_key(value: Any) -> Any:
    number = coerce_number(value)
    if number is not None:
        return number
    # Non-numeric entries such as "20 KVA" still compare as text.
    return _text_key(value)


class ReconciliationComparator:
    """
    Field-by-field comparison of the technician's identity report against the
    recorded expectation. Mismatches are kept even when a reviewer overrides.
    """

    def __init__(self, log: Any, fields: Iterable[str] | None = None):
        self.log = log
        self.fields = list(fields) if fields is not None else list(FIELD_SPECS)
        unknown = [f for f in self.fields if f not in FIELD_SPECS]
        if unknown:
            raise ValueError(f"Unknown reconciliation fields: {', '.join(unknown)}")

    def compare_field(self, field_name: str, expected: Any, reported: Any) -> ReconciliationField:
        _, numeric = FIELD_SPECS[field_name]
        key = _numeric_key if numeric else _text_key
        return ReconciliationField(
            field_name=field_name,
            expected_value=expected,
            reported_value=reported,
            matches=key(expected) == key(reported),
        )

    def reconcile(
        self,
        expected: EquipmentIdentity,
        reported: EquipmentIdentity,
        *,
        equipment_id: str = "",
        override: Optional[ReconciliationOverride] = None,
    ) -> ReconciliationResult:
        fields: List[ReconciliationField] = []
        for name in self.fields:
            attr, _ = FIELD_SPECS[name]
            fields.append(self.compare_field(name, getattr(expected, attr), getattr(reported, attr)))

        discrepancies = sum(1 for f in fields if not f.matches)
        all_match = discrepancies == 0

        if override is not None and not all_match:
            self.log.info(
                "Reconciliation for %s overridden by %s with %d discrepancies retained",
                equipment_id or "?",
                override.reviewer,
                discrepancies,
            )
        elif discrepancies:
            self.log.debug(
                "Reconciliation for %s: %d discrepancies (%s)",
                equipment_id or "?",
                discrepancies,
                ", ".join(f.field_name for f in fields if not f.matches),
            )

        return ReconciliationResult(
            equipment_id=equipment_id,
            fields=tuple(fields),
            verified=all_match or override is not None,
            discrepancy_count=discrepancies,
            override=override,
        )


# ----------------------------------------------------------------------
# Legacy form shape (<Field>Correct flags + Act<Field> values)
# ----------------------------------------------------------------------
def expected_from_legacy_form(form: Mapping[str, Any]) -> EquipmentIdentity:
    values = {
        FIELD_SPECS[name][0]: form.get(columns[0])
        for name, columns in LEGACY_COLUMNS.items()
    }
    return EquipmentIdentity(**values)


def reported_from_legacy_form(expected: EquipmentIdentity, form: Mapping[str, Any]) -> EquipmentIdentity:
    """A field marked correct (or left unmarked) confirms the expected value."""
    values = {}
    for name, (_, flag_col, actual_col) in LEGACY_COLUMNS.items():
        attr = FIELD_SPECS[name][0]
        flag = form.get(flag_col)
        if flag is None or Verdict.from_legacy(str(flag)) is Verdict.PASS:
            values[attr] = getattr(expected, attr)
        else:
            values[attr] = form.get(actual_col)
    return EquipmentIdentity(**values)


def legacy_flags(result: ReconciliationResult) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in result.fields:
        _, flag_col, actual_col = LEGACY_COLUMNS[f.field_name]
        out[flag_col] = "Y" if f.matches else "N"
        out[actual_col] = "" if f.matches else f.reported_value
    out["Verified"] = result.verified
    return out
