"""Lectura de alertas (más recientes primero, página acotada)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from rules_engine.service import RulesEngine

from ..deps import get_engine
from ..schemas import AlertOut

router = APIRouter(tags=["alerts"])


@router.get("/alerts", response_model=List[AlertOut])
def list_alerts(
    tenant_id: Optional[str] = Query(default=None, alias="tenantId"),
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    metric_type: Optional[str] = Query(default=None, alias="type"),
    time_from: Optional[datetime] = Query(default=None, alias="from"),
    time_to: Optional[datetime] = Query(default=None, alias="to"),
    limit: Optional[int] = Query(default=None, ge=1),
    engine: RulesEngine = Depends(get_engine),
):
    alerts = engine.alerts.list_alerts(
        tenant_id=tenant_id,
        device_id=device_id,
        metric_type=metric_type,
        time_from=time_from,
        time_to=time_to,
        limit=limit,
    )
    return [AlertOut.from_alert(a) for a in alerts]
