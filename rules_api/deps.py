from __future__ import annotations

from fastapi import HTTPException, Request

from rules_engine.service import RulesEngine


def get_engine(request: Request) -> RulesEngine:
    engine = getattr(request.app.state, "rules_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="rules engine not initialized")
    return engine
