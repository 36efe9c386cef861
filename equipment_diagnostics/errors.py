# equipment_diagnostics/errors.py


class EvaluationError(ValueError):
    """Structurally invalid input for a single equipment evaluation."""


class UnsupportedEquipmentError(EvaluationError):
    def __init__(self, family):
        super().__init__(f"Unsupported equipment family: {family!r}")
        self.family = family


class UnsupportedMeasurementError(EvaluationError):
    def __init__(self, kind, component_id=None):
        where = f" (component {component_id})" if component_id else ""
        super().__init__(f"Unsupported measurement kind: {kind!r}{where}")
        self.kind = kind
        self.component_id = component_id
