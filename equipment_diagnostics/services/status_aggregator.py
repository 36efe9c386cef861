# equipment_diagnostics/services/status_aggregator.py

from __future__ import annotations

import math
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from equipment_diagnostics.config import AggregationConfig
from equipment_diagnostics.models.classification import Classification, Verdict
from equipment_diagnostics.models.component_status import (
    DATA_INCOMPLETE,
    MAJOR_DEFICIENCY,
    OFFLINE,
    PROACTIVE_REPLACEMENT,
    REPLACEMENT_RECOMMENDED,
    VERDICT_LABELS,
    ComponentStatus,
    LoadSummary,
    status_rank,
)


def max_current(kva: float, voltage: float, phase_count: int) -> float:
    return (kva * 1000.0) / (voltage * math.sqrt(phase_count))


def load_percentage(current: float, kva: float, voltage: float, phase_count: int) -> float:
    return current / max_current(kva, voltage, phase_count) * 100.0


def service_age_years(start: date, today: date) -> int:
    """Whole years in service, counted the way the battery forms count them."""
    return (today - start).days // 365


def worst_verdict(verdicts: Iterable[Verdict]) -> Optional[Verdict]:
    worst: Optional[Verdict] = None
    for verdict in verdicts:
        if worst is None or verdict.severity > worst.severity:
            worst = verdict
    return worst


class StatusAggregator:
    """
    Rolls classifications up into one status label per component.
    Worst verdict wins; clustered cell warnings, capacity overload and
    service life can push the label further up the ladder.
    """

    def __init__(self, cfg: AggregationConfig, log: Any):
        self.cfg = cfg
        self.log = log

    # ----------------------------------------------------------------------
    # Cell clustering
    # ----------------------------------------------------------------------
    def _cell_verdicts(self, classifications: Iterable[Classification]) -> Dict[str, Dict[int, Verdict]]:
        by_parent: Dict[str, Dict[int, Verdict]] = {}
        for c in classifications:
            m = c.measurement
            if m.parent_id is None or m.position is None:
                continue
            cells = by_parent.setdefault(m.parent_id, {})
            current = cells.get(m.position)
            if current is None or c.verdict.severity > current.severity:
                cells[m.position] = c.verdict
        return by_parent

    def clustered_strings(self, classifications: Iterable[Classification]) -> List[str]:
        """Parent ids whose Warning cells are clustered enough to escalate."""
        min_run = self.cfg.adjacent_warning_cells
        fraction = self.cfg.warning_cell_fraction
        flagged: List[str] = []

        for parent, cells in sorted(self._cell_verdicts(classifications).items()):
            warn_positions = sorted(p for p, v in cells.items() if v is Verdict.WARNING)
            if not warn_positions:
                continue

            longest = run = 1
            for prev, pos in zip(warn_positions, warn_positions[1:]):
                run = run + 1 if pos == prev + 1 else 1
                longest = max(longest, run)

            if min_run and longest >= min_run:
                flagged.append(parent)
            elif fraction is not None and len(warn_positions) / len(cells) > fraction:
                flagged.append(parent)

        return flagged

    # ----------------------------------------------------------------------
    # Capacity
    # ----------------------------------------------------------------------
    def compute_load(
        self,
        currents: Mapping[str, Optional[float]],
        kva: Optional[float],
        voltage: Optional[float],
        phase_count: Optional[int] = None,
    ) -> Optional[LoadSummary]:
        if not kva or not voltage or kva <= 0 or voltage <= 0 or not currents:
            return None

        phases = phase_count or len(currents)
        limit = max_current(kva, voltage, phases)
        per_phase = {
            name: (current / limit * 100.0 if current is not None else None)
            for name, current in sorted(currents.items())
        }
        present = [v for v in per_phase.values() if v is not None]
        if not present:
            return LoadSummary(kva, voltage, phases, limit, per_phase, None, Verdict.INCOMPLETE)

        average = sum(present) / len(present)
        peak = max(present)
        verdict = Verdict.PASS
        if self.cfg.overload_error_pct is not None and peak > self.cfg.overload_error_pct:
            verdict = Verdict.ERROR
        elif self.cfg.overload_warning_pct is not None and peak > self.cfg.overload_warning_pct:
            verdict = Verdict.WARNING

        if verdict is not Verdict.PASS:
            self.log.info("Load %.1f%% on peak phase exceeds overload band (%s)", peak, verdict.value)

        return LoadSummary(kva, voltage, phases, limit, per_phase, average, verdict)

    # ----------------------------------------------------------------------
    # Rollup
    # ----------------------------------------------------------------------
    def aggregate(
        self,
        classifications: Iterable[Classification],
        *,
        component_id: str = "unit",
        load: Optional[LoadSummary] = None,
        offline: bool = False,
        service_life_years: Optional[int] = None,
        age_years: Optional[int] = None,
    ) -> ComponentStatus:
        items: Tuple[Classification, ...] = tuple(classifications)
        notes: List[str] = []

        verdicts = [c.verdict for c in items]
        # Load only counts once it leaves the overload band.
        if load is not None and load.verdict in (Verdict.WARNING, Verdict.ERROR):
            verdicts.append(load.verdict)
            notes.append(f"load {load.load_percentage:.1f}% exceeds overload band")

        worst = worst_verdict(verdicts) or Verdict.INCOMPLETE
        if not items:
            notes.append("no measurements")
        labels = [VERDICT_LABELS[worst]]

        escalated = False
        if worst is Verdict.WARNING:
            clustered = self.clustered_strings(items)
            if clustered:
                escalated = True
                labels.append(MAJOR_DEFICIENCY)
                notes.append("adjacent cells degraded: " + ", ".join(clustered))

        if service_life_years is not None and age_years is not None:
            if age_years >= service_life_years:
                labels.append(REPLACEMENT_RECOMMENDED)
                notes.append(f"in service {age_years}y (life {service_life_years}y)")
            elif age_years == service_life_years - 1:
                labels.append(PROACTIVE_REPLACEMENT)
                notes.append(f"one year from end of service life ({service_life_years}y)")

        if offline:
            labels.append(OFFLINE)
            notes.append("reported offline")

        label = max(labels, key=status_rank)
        if label == DATA_INCOMPLETE and items:
            incomplete = sum(1 for c in items if c.verdict is Verdict.INCOMPLETE)
            notes.append(f"{incomplete} of {len(items)} readings incomplete")

        return ComponentStatus(
            component_id=component_id,
            classifications=items,
            rollup_verdict=worst,
            rollup_status=label,
            escalated=escalated,
            load=load,
            notes=tuple(notes),
        )

    def equipment_status(self, components: Iterable[ComponentStatus]) -> str:
        labels = [c.rollup_status for c in components]
        if not labels:
            return DATA_INCOMPLETE
        return max(labels, key=status_rank)
