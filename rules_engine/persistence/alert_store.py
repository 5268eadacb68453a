"""Repositorio de alertas - historial durable usado también para el cooldown."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import insert, select, text
from sqlalchemy.engine import Connection, Engine, RowMapping

from ..domain.models import Alert
from .tables import alerts_table

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200


def _row_to_alert(row: RowMapping) -> Alert:
    return Alert(
        id=row["id"],
        rule_id=row["rule_id"],
        tenant_id=row["tenant_id"],
        device_id=row["device_id"],
        metric_type=row["type"],
        value=float(row["value"]),
        time=row["time"],
        severity=row["severity"],
        message=row["message"],
    )


def _recent_stmt(rule_id: str, device_id: str, since: datetime):
    return (
        select(alerts_table.c.id)
        .where(
            alerts_table.c.rule_id == rule_id,
            alerts_table.c.device_id == device_id,
            alerts_table.c.time >= since,
        )
        .limit(1)
    )


def _insert_stmt(alert: Alert):
    return insert(alerts_table).values(
        id=alert.id,
        rule_id=alert.rule_id,
        tenant_id=alert.tenant_id,
        device_id=alert.device_id,
        type=alert.metric_type,
        value=alert.value,
        time=alert.time,
        severity=alert.severity,
        message=alert.message,
    )


def advisory_key(rule_id: str, device_id: str) -> int:
    """Clave bigint estable para ``pg_advisory_xact_lock``."""
    digest = hashlib.blake2b(f"{rule_id}|{device_id}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def _lock_scope(conn: Connection, rule_id: str, device_id: str) -> None:
    # Debe ser lo primero de la transacción.
    dialect = conn.dialect.name
    if dialect == "postgresql":
        conn.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": advisory_key(rule_id, device_id)},
        )
    elif dialect == "sqlite":
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class AlertStore:
    """Operaciones sobre la tabla ``alerts``.

    Las alertas nunca se actualizan ni se borran desde el motor.
    """

    def __init__(self, engine: Engine, page_size: int = DEFAULT_PAGE_SIZE):
        self._engine = engine
        self._page_size = max(1, page_size)

    @property
    def page_size(self) -> int:
        return self._page_size

    def has_recent_alert(self, rule_id: str, device_id: str, since: datetime) -> bool:
        """True si existe una alerta para (rule, device) con ``time >= since``."""
        with self._engine.connect() as conn:
            row = conn.execute(_recent_stmt(rule_id, device_id, since)).first()
        return row is not None

    def record_alert(self, alert: Alert) -> Alert:
        """Inserta la alerta y hace commit antes de devolverla.

        Asigna id y timestamp si faltan.
        """
        stored = alert.with_identity()
        with self._engine.begin() as conn:
            conn.execute(_insert_stmt(stored))
        self._log_stored(stored)
        return stored

    def record_alert_unless_recent(self, alert: Alert, since: datetime) -> Optional[Alert]:
        """Check-then-insert atómico por (rule_id, device_id).

        La consulta de alertas recientes y el INSERT van en la misma
        transacción, serializada entre procesos:
        - PostgreSQL: ``pg_advisory_xact_lock`` sobre la pareja.
        - SQLite: ``BEGIN IMMEDIATE`` (lock de escritura de la BD).

        Devuelve la alerta guardada o None si ya había una con ``time >= since``.
        """
        stored = alert.with_identity()
        with self._engine.begin() as conn:
            _lock_scope(conn, stored.rule_id, stored.device_id)
            if conn.execute(_recent_stmt(stored.rule_id, stored.device_id, since)).first() is not None:
                return None
            conn.execute(_insert_stmt(stored))
        self._log_stored(stored)
        return stored

    @staticmethod
    def _log_stored(stored: Alert) -> None:
        logger.info(
            "[ALERTS] Stored alert=%s rule=%s device=%s type=%s value=%s",
            stored.id, stored.rule_id, stored.device_id, stored.metric_type, stored.value,
        )

    def list_alerts(
        self,
        *,
        tenant_id: Optional[str] = None,
        device_id: Optional[str] = None,
        metric_type: Optional[str] = None,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Alert]:
        """Alertas filtradas, más recientes primero, con página acotada."""
        page = self._page_size if not limit or limit <= 0 else min(limit, self._page_size)

        stmt = select(alerts_table)
        if tenant_id:
            stmt = stmt.where(alerts_table.c.tenant_id == tenant_id)
        if device_id:
            stmt = stmt.where(alerts_table.c.device_id == device_id)
        if metric_type and metric_type.strip():
            stmt = stmt.where(alerts_table.c.type == metric_type)
        if time_from is not None:
            stmt = stmt.where(alerts_table.c.time >= time_from)
        if time_to is not None:
            stmt = stmt.where(alerts_table.c.time <= time_to)
        stmt = stmt.order_by(alerts_table.c.time.desc(), alerts_table.c.id).limit(page)

        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_alert(r) for r in rows]
