"""Persistence layer - catálogo de reglas, alertas y mediciones."""

from .alert_store import AlertStore
from .measurement_source import MeasurementSource
from .rule_catalog import RuleCatalog
from .tables import ensure_rules_schema

__all__ = ["AlertStore", "MeasurementSource", "RuleCatalog", "ensure_rules_schema"]
