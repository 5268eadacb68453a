"""Health, readiness y métricas del servicio."""

from fastapi import APIRouter, Depends, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from common.db import check_connection
from rules_engine.service import RulesEngine

from ..deps import get_engine
from ..schemas import ServiceInfo

router = APIRouter(tags=["health"])


@router.get("/", response_model=ServiceInfo)
def root():
    return {"service": "Rules.Engine", "status": "ok"}


@router.get("/health")
def health():
    """Liveness probe: always returns ok if process is running."""
    return {"status": "ok"}


@router.get("/ready")
def ready(engine: RulesEngine = Depends(get_engine)):
    """Readiness probe: checks rules DB connectivity."""
    if not check_connection(engine.catalog.engine):
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready"}


@router.get("/stats")
def stats(engine: RulesEngine = Depends(get_engine)):
    """Estado del worker, contadores y salud del publicador."""
    return {
        "worker": engine.scheduler.health_check(),
        "publisher": engine.publisher.health_check(),
    }


@router.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
