"""Operadores de comparación para reglas de umbral.

Conjunto cerrado de seis símbolos más un fallback UNKNOWN. La evaluación
es total: un operador no reconocido nunca hace match y nunca lanza.
"""

from __future__ import annotations

from enum import Enum

EPSILON = 1e-9


class ComparisonOperator(str, Enum):
    """Operadores soportados por una regla."""
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="
    NE = "!="
    UNKNOWN = "?"

    @classmethod
    def parse(cls, symbol: str | None) -> "ComparisonOperator":
        if symbol is None:
            return cls.UNKNOWN
        try:
            op = cls(symbol)
        except ValueError:
            return cls.UNKNOWN
        return op

    @property
    def is_known(self) -> bool:
        return self is not ComparisonOperator.UNKNOWN

    def evaluate(self, value: float, threshold: float) -> bool:
        if self is ComparisonOperator.GT:
            return value > threshold
        if self is ComparisonOperator.GTE:
            return value >= threshold
        if self is ComparisonOperator.LT:
            return value < threshold
        if self is ComparisonOperator.LTE:
            return value <= threshold
        if self is ComparisonOperator.EQ:
            return abs(value - threshold) < EPSILON
        if self is ComparisonOperator.NE:
            return abs(value - threshold) >= EPSILON
        return False


def matches(operator: str | ComparisonOperator, value: float, threshold: float) -> bool:
    """True si ``value`` cumple la condición ``operator threshold``."""
    if not isinstance(operator, ComparisonOperator):
        operator = ComparisonOperator.parse(operator)
    return operator.evaluate(float(value), float(threshold))
