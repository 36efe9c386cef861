# equipment_diagnostics/models/component_status.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from equipment_diagnostics.models.classification import Classification, Verdict


ONLINE = "Online"
DATA_INCOMPLETE = "On-Line (data incomplete)"
MINOR_DEFICIENCY = "On-Line(Minor Deficiency)"
PROACTIVE_REPLACEMENT = "Proactive Replacement"
MAJOR_DEFICIENCY = "On-Line(Major Deficiency)"
REPLACEMENT_RECOMMENDED = "Replacement Recommended"
CRITICAL_DEFICIENCY = "Critical Deficiency"
OFFLINE = "Offline"

# Least to most severe.
STATUS_LADDER = (
    ONLINE,
    DATA_INCOMPLETE,
    MINOR_DEFICIENCY,
    PROACTIVE_REPLACEMENT,
    MAJOR_DEFICIENCY,
    REPLACEMENT_RECOMMENDED,
    CRITICAL_DEFICIENCY,
    OFFLINE,
)

VERDICT_LABELS = {
    Verdict.PASS: ONLINE,
    Verdict.INCOMPLETE: DATA_INCOMPLETE,
    Verdict.WARNING: MINOR_DEFICIENCY,
    Verdict.ERROR: CRITICAL_DEFICIENCY,
}


def status_rank(label: str) -> int:
    return STATUS_LADDER.index(label)


@dataclass(frozen=True)
class LoadSummary:
    kva: float
    voltage: float
    phase_count: int
    max_current: float
    per_phase_pct: Dict[str, Optional[float]]
    load_percentage: Optional[float]
    verdict: Verdict


@dataclass(frozen=True)
class ComponentStatus:
    component_id: str
    classifications: Tuple[Classification, ...]
    rollup_verdict: Verdict
    rollup_status: str
    escalated: bool = False
    load: Optional[LoadSummary] = None
    notes: Tuple[str, ...] = ()

    @property
    def is_deficient(self) -> bool:
        return status_rank(self.rollup_status) >= status_rank(MINOR_DEFICIENCY)


@dataclass
class EquipmentEvaluation:
    equipment_id: str
    family: str
    job_id: Optional[str]
    status: str
    components: List[ComponentStatus]
    profile_match: str
    notes: List[str] = field(default_factory=list)

    @property
    def classifications(self) -> List[Classification]:
        return [c for comp in self.components for c in comp.classifications]
