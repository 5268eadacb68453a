"""Domain layer - Modelos y evaluación de umbrales."""

from .models import Alert, Rule, Sample, DEFAULT_COOLDOWN_SECONDS, DEFAULT_SEVERITY
from .operators import ComparisonOperator, matches

__all__ = [
    "Alert",
    "Rule",
    "Sample",
    "ComparisonOperator",
    "matches",
    "DEFAULT_COOLDOWN_SECONDS",
    "DEFAULT_SEVERITY",
]
