"""
Thynk ROI Modeler: error types shared by the engines and the API.
"""


class ConfigurationRangeError(ValueError):
    """A numeric input outside its domain. Reported, never raised by the clamps."""

    def __init__(self, field, value, bound, module_id=None):
        self.field = field
        self.value = value
        self.bound = bound
        self.module_id = module_id
        where = f"{module_id}.{field}" if module_id else field
        super().__init__(f"{where}={value!r} out of range, clamped to {bound}")

    def to_dict(self):
        return {'module': self.module_id, 'field': self.field,
                'value': self.value, 'clampedTo': self.bound}


class ScenarioDecodeError(ValueError):
    """A persisted scenario string could not be decoded."""


class CalculationFault(RuntimeError):
    """A recalculation pass aborted; no partial results are published."""
