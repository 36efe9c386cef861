# equipment_diagnostics/models/classification.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from equipment_diagnostics.models.measurement import Measurement


class Verdict(str, Enum):
    PASS = "Pass"
    WARNING = "Warning"
    ERROR = "Error"
    INCOMPLETE = "Incomplete"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def from_legacy(cls, code: str | None) -> "Verdict":
        """Decode the single-letter pass/fail flags stored by the reading forms."""
        value = (code or "").strip().upper()
        if value in ("P", "Y", "PASS", "YES", "TRUE", "1"):
            return cls.PASS
        if value in ("F", "N", "FAIL", "YS", "NO", "FALSE", "0"):
            return cls.ERROR
        if value == "W":
            return cls.WARNING
        return cls.INCOMPLETE


_SEVERITY = {
    Verdict.PASS: 0,
    Verdict.INCOMPLETE: 1,
    Verdict.WARNING: 2,
    Verdict.ERROR: 3,
}


@dataclass(frozen=True)
class Classification:
    measurement: Measurement
    verdict: Verdict
    deviation_pct: Optional[float] = None
    deviation: Optional[float] = None
    rule: str = "none"           # none | reference | band
    note: Optional[str] = None

    @property
    def legacy_code(self) -> str:
        return _LEGACY_CODES[self.verdict]


_LEGACY_CODES = {
    Verdict.PASS: "P",
    Verdict.WARNING: "W",
    Verdict.ERROR: "F",
    Verdict.INCOMPLETE: "",
}
