from __future__ import annotations

from typing import Optional
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from .config import get_settings


logger = logging.getLogger(__name__)


_rules_engine: Optional[Engine] = None
_ingest_engine: Optional[Engine] = None


def _safe_url(url: str) -> str:
    # Never log passwords.
    return make_url(url).render_as_string(hide_password=True)


def build_engine(url: str, *, label: str) -> Engine:
    logger.info("[DB] Crear engine %s url=%s", label, _safe_url(url))

    engine = create_engine(url, pool_pre_ping=True, pool_recycle=300, future=True)

    # Test de conexión: ayuda a ver en logs si el servicio realmente llega a la BD.
    # Un fallo aquí no es fatal; el worker reintenta en cada ciclo.
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Test de conexión OK (%s)", label)
    except Exception:
        logger.exception("[DB] Test de conexión FALLÓ (%s)", label)

    return engine


def get_rules_engine() -> Engine:
    """Engine for the rules/alerts database (read-write)."""
    global _rules_engine
    if _rules_engine is None:
        _rules_engine = build_engine(get_settings().rules_db_url, label="rules")
    return _rules_engine


def get_ingest_engine() -> Engine:
    """Engine for the ingest measurements database (read-only usage)."""
    global _ingest_engine
    if _ingest_engine is None:
        _ingest_engine = build_engine(get_settings().ingest_db_url, label="ingest")
    return _ingest_engine


def check_connection(engine: Engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.warning("[DB] Readiness check failed", exc_info=True)
        return False


def dispose_engines() -> None:
    """Cierra los pools (útil para shutdown y testing)."""
    global _rules_engine, _ingest_engine
    for engine in (_rules_engine, _ingest_engine):
        if engine is not None:
            engine.dispose()
    _rules_engine = None
    _ingest_engine = None
