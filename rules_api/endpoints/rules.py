"""Endpoints de reglas: crear, listar, consultar."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from rules_engine.service import RulesEngine

from ..deps import get_engine
from ..schemas import RuleCreateIn, RuleOut

router = APIRouter(tags=["rules"])


@router.post("/rules", response_model=RuleOut, status_code=201)
def create_rule(payload: RuleCreateIn, response: Response, engine: RulesEngine = Depends(get_engine)):
    rule = engine.catalog.create_rule(
        tenant_id=payload.tenant_id,
        device_id=payload.device_id,
        metric_type=payload.type,
        operator=payload.op,
        threshold=payload.threshold,
        cooldown_seconds=payload.cooldown_seconds,
        enabled=payload.enabled,
    )
    response.headers["Location"] = f"/rules/{rule.id}"
    return RuleOut.from_rule(rule)


@router.get("/rules", response_model=List[RuleOut])
def list_rules(engine: RulesEngine = Depends(get_engine)):
    return [RuleOut.from_rule(r) for r in engine.catalog.list_rules()]


@router.get("/rules/{rule_id}", response_model=RuleOut)
def get_rule(rule_id: str, engine: RulesEngine = Depends(get_engine)):
    rule = engine.catalog.get_rule(rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="rule not found")
    return RuleOut.from_rule(rule)
