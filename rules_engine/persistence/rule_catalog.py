"""Catálogo de reglas - lectura para el worker y pass-through para la API."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine, RowMapping

from ..domain.models import DEFAULT_COOLDOWN_SECONDS, Rule, new_id, utc_now
from .tables import rules_table

logger = logging.getLogger(__name__)


def _row_to_rule(row: RowMapping) -> Rule:
    return Rule(
        id=row["id"],
        tenant_id=row["tenant_id"],
        device_id=row["device_id"],
        metric_type=row["type"],
        operator=row["operator"],
        threshold=float(row["threshold"]),
        cooldown_seconds=row["cooldown_seconds"],
        enabled=bool(row["enabled"]),
        created_at=row["created_at"],
    )


class RuleCatalog:
    """Acceso a la tabla ``rules``.

    El motor solo lee (``list_enabled_rules``); la creación llega por la API.
    Los errores de BD se propagan: el scheduler decide saltar el ciclo.
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def list_enabled_rules(self) -> list[Rule]:
        stmt = (
            select(rules_table)
            .where(rules_table.c.enabled.is_(True))
            .order_by(rules_table.c.created_at, rules_table.c.id)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_rule(r) for r in rows]

    def list_rules(self) -> list[Rule]:
        stmt = select(rules_table).order_by(rules_table.c.created_at.desc(), rules_table.c.id)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_rule(r) for r in rows]

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        stmt = select(rules_table).where(rules_table.c.id == rule_id)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _row_to_rule(row) if row else None

    def create_rule(
        self,
        *,
        tenant_id: str,
        device_id: Optional[str],
        metric_type: str,
        operator: str,
        threshold: float,
        cooldown_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
        created_at: Optional[datetime] = None,
    ) -> Rule:
        rule = Rule(
            id=new_id(),
            tenant_id=tenant_id,
            device_id=device_id,
            metric_type=metric_type,
            operator=operator,
            threshold=float(threshold),
            cooldown_seconds=DEFAULT_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds,
            enabled=True if enabled is None else bool(enabled),
            created_at=created_at or utc_now(),
        )
        if not rule.comparison.is_known:
            # Se guarda igual: nunca hará match, pero que quede registro.
            logger.warning("[RULES] Rule %s stored with unknown operator %r", rule.id, operator)

        with self._engine.begin() as conn:
            conn.execute(
                insert(rules_table).values(
                    id=rule.id,
                    tenant_id=rule.tenant_id,
                    device_id=rule.device_id,
                    type=rule.metric_type,
                    operator=rule.operator,
                    threshold=rule.threshold,
                    cooldown_seconds=rule.cooldown_seconds,
                    enabled=rule.enabled,
                    created_at=rule.created_at,
                )
            )
        logger.info("[RULES] Created %s op=%s threshold=%s", rule.describe(), rule.operator, rule.threshold)
        return rule
