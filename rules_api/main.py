from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from common.db import dispose_engines
from rules_engine.service import RulesEngine, build_rules_engine

from .endpoints import alerts_router, health_router, rules_router

logger = logging.getLogger(__name__)


def create_app(engine_factory: Optional[Callable[[], RulesEngine]] = None) -> FastAPI:
    """Crea la app FastAPI.

    El worker de evaluación corre dentro del mismo proceso (como un hosted
    service) salvo que ``RULES_WORKER_ENABLED=false``; en ese caso se
    ejecuta aparte con ``python -m jobs.rules_worker``.
    """
    factory = engine_factory or build_rules_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = factory()
        app.state.rules_engine = engine
        if engine.settings.worker_enabled:
            engine.start_worker()
        else:
            logger.info("[RULES] Worker disabled in API process (RULES_WORKER_ENABLED=false)")
        try:
            yield
        finally:
            # shutdown() puede esperar al worker hasta 30s: fuera del event loop.
            await run_in_threadpool(engine.shutdown)
            if engine_factory is None:
                dispose_engines()

    app = FastAPI(title="Rules Engine", version="0.1.0", lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(rules_router)
    app.include_router(alerts_router)
    return app


app = create_app()
