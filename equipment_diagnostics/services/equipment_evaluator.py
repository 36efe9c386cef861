# equipment_diagnostics/services/equipment_evaluator.py

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from equipment_diagnostics.errors import EvaluationError
from equipment_diagnostics.models.classification import Classification
from equipment_diagnostics.models.component_status import ComponentStatus, EquipmentEvaluation
from equipment_diagnostics.models.equipment import EquipmentReadings
from equipment_diagnostics.models.measurement import MeasurementKind
from equipment_diagnostics.models.reference import CAPACITY_FAMILIES, EquipmentFamily, ReferenceProfile
from equipment_diagnostics.services.classifier import Classifier
from equipment_diagnostics.services.reading_normalizer import ReadingNormalizer, coerce_number
from equipment_diagnostics.services.reference_resolver import ReferenceResolver, parse_family
from equipment_diagnostics.services.status_aggregator import StatusAggregator, service_age_years


class EquipmentEvaluator:
    """
    Runs one equipment unit through normalize -> resolve -> classify ->
    aggregate. Holds no state between units.
    """

    def __init__(
        self,
        normalizer: ReadingNormalizer,
        resolver: ReferenceResolver,
        classifier: Classifier,
        aggregator: StatusAggregator,
        log: Any,
        *,
        phase_to_neutral_families: Iterable[str] = (),
    ):
        self.normalizer = normalizer
        self.resolver = resolver
        self.classifier = classifier
        self.aggregator = aggregator
        self.log = log
        self.phase_to_neutral_families = {f.strip().lower() for f in phase_to_neutral_families}

    # ----------------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------------
    def _check_unit_baseline(self, unit: EquipmentReadings, profile: ReferenceProfile) -> Optional[str]:
        if unit.unit_baseline is None:
            return None
        canonical = profile.baseline_for_method()
        if canonical is not None and abs(unit.unit_baseline - canonical) < 1e-9:
            return None
        self.log.warning(
            "%s: per-unit baseline %s differs from manufacturer/model baseline %s; "
            "using the manufacturer/model baseline, flagged for review",
            unit.equipment_id,
            unit.unit_baseline,
            canonical,
        )
        return (
            f"per-unit baseline {unit.unit_baseline:g} ignored in favour of "
            f"manufacturer/model baseline; review"
        )

    def _group(self, unit: EquipmentReadings, classifications: List[Classification]) -> Dict[str, List[Classification]]:
        groups: Dict[str, List[Classification]] = {}
        for c in classifications:
            groups.setdefault(c.measurement.group or unit.equipment_id, []).append(c)
        return groups

    def _load_for(
        self,
        unit: EquipmentReadings,
        family: EquipmentFamily,
        key: str,
        groups: Dict[str, List[Classification]],
    ):
        if family not in CAPACITY_FAMILIES:
            return None
        target = unit.load_group if unit.load_group in groups else unit.equipment_id
        if key != target:
            return None
        currents = {
            c.measurement.component_id: c.measurement.raw_value
            for c in groups[key]
            if c.measurement.kind is MeasurementKind.CURRENT
        }
        return self.aggregator.compute_load(
            currents,
            coerce_number(unit.kva),
            coerce_number(unit.output_voltage),
            unit.phase_count,
        )

    # ----------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------
    def evaluate(self, unit: EquipmentReadings, *, today: Optional[date] = None) -> EquipmentEvaluation:
        family = parse_family(unit.family)
        measurements = self.normalizer.normalize(
            unit.readings,
            require_phase_to_neutral=family.value in self.phase_to_neutral_families,
        )
        profile = self.resolver.resolve(family, unit.manufacturer, unit.model, unit.reading_method)

        notes: List[str] = []
        if profile.neutral:
            notes.append(
                f"no reference data for {family.value} {unit.manufacturer or '?'} "
                f"{unit.model or '?'}; readings marked Incomplete"
            )
        baseline_note = self._check_unit_baseline(unit, profile)
        if baseline_note:
            notes.append(baseline_note)

        classifications = [self.classifier.classify(m, profile) for m in measurements]
        groups = self._group(unit, classifications)

        age = None
        life = profile.service_life_years if family is EquipmentFamily.BATTERY else None
        if life is not None and unit.in_service_since is not None:
            age = service_age_years(unit.in_service_since, today or date.today())

        components: List[ComponentStatus] = []
        for key, items in groups.items():
            components.append(
                self.aggregator.aggregate(
                    items,
                    component_id=key,
                    load=self._load_for(unit, family, key, groups),
                    offline=unit.offline,
                    service_life_years=life,
                    age_years=age,
                )
            )
        if not components:
            components.append(
                self.aggregator.aggregate([], component_id=unit.equipment_id, offline=unit.offline)
            )

        status = self.aggregator.equipment_status(components)
        self.log.debug(
            "%s (%s): %d measurements, %d components, status=%s",
            unit.equipment_id,
            family.value,
            len(measurements),
            len(components),
            status,
        )
        return EquipmentEvaluation(
            equipment_id=unit.equipment_id,
            family=family.value,
            job_id=unit.job_id,
            status=status,
            components=components,
            profile_match=profile.match_level,
            notes=notes,
        )

    def evaluate_batch(
        self,
        units: Iterable[EquipmentReadings],
        *,
        today: Optional[date] = None,
    ) -> Tuple[List[EquipmentEvaluation], Dict[str, str]]:
        """Evaluate every unit; a structurally invalid unit fails alone."""
        results: List[EquipmentEvaluation] = []
        errors: Dict[str, str] = {}
        for unit in units:
            try:
                results.append(self.evaluate(unit, today=today))
            except EvaluationError as exc:
                self.log.error("Evaluation failed for %s: %s", unit.equipment_id, exc)
                errors[unit.equipment_id] = str(exc)
        return results, errors
