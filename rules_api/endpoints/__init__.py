"""Módulo de endpoints HTTP.

Contiene los endpoints de la API del motor de reglas organizados por función.
"""

from .alerts import router as alerts_router
from .health import router as health_router
from .rules import router as rules_router

__all__ = [
    "alerts_router",
    "health_router",
    "rules_router",
]
