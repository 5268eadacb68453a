"""Lectura de la última medición por scope desde la BD del ingest gateway."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine

from ..domain.models import Sample
from .tables import measurements_table


class MeasurementSource:
    """Acceso de solo lectura a ``measurements``.

    Con ``device_id=None`` devuelve la medición más reciente entre todos los
    dispositivos del tenant/tipo; el ``device_id`` de la muestra es concreto.
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    def latest_sample(
        self,
        tenant_id: str,
        device_id: Optional[str],
        metric_type: str,
    ) -> Optional[Sample]:
        m = measurements_table.c
        stmt = select(m.tenant_id, m.device_id, m.type, m.value, m.time).where(
            m.tenant_id == tenant_id,
            m.type == metric_type,
        )
        if device_id is not None:
            stmt = stmt.where(m.device_id == device_id)
        stmt = stmt.order_by(m.time.desc(), m.id.desc()).limit(1)

        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()

        if row is None:
            return None
        return Sample(
            tenant_id=row["tenant_id"],
            device_id=row["device_id"],
            metric_type=row["type"],
            value=float(row["value"]),
            time=row["time"],
        )
