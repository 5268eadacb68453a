"""Wiring del motor: crea catálogo, stores, publicador y scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from common.config import Settings, get_settings
from common.db import get_ingest_engine, get_rules_engine

from .evaluation import CooldownTracker, EngineStats, EvaluationScheduler, RuleProcessor
from .persistence import AlertStore, MeasurementSource, RuleCatalog, ensure_rules_schema
from .realtime import AlertPublisher, create_publisher

logger = logging.getLogger(__name__)


@dataclass
class RulesEngine:
    """Componentes del motor compartidos por la API y el worker."""
    settings: Settings
    catalog: RuleCatalog
    alerts: AlertStore
    source: MeasurementSource
    publisher: AlertPublisher
    scheduler: EvaluationScheduler

    def start_worker(self) -> None:
        self.publisher.start()
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.publisher.close()


def build_rules_engine(
    settings: Optional[Settings] = None,
    *,
    rules_engine: Optional[Engine] = None,
    ingest_engine: Optional[Engine] = None,
    publisher: Optional[AlertPublisher] = None,
) -> RulesEngine:
    settings = settings or get_settings()
    rules_db = rules_engine or get_rules_engine()
    ingest_db = ingest_engine or get_ingest_engine()

    if settings.ensure_schema:
        try:
            ensure_rules_schema(rules_db)
        except Exception:
            # La BD puede no estar lista todavía; el worker reintenta cada tick.
            logger.exception("[DB] Could not ensure rules schema")

    catalog = RuleCatalog(rules_db)
    alerts = AlertStore(rules_db, page_size=settings.alerts_page_size)
    source = MeasurementSource(ingest_db)
    publisher = publisher or create_publisher(settings)

    processor = RuleProcessor(
        source,
        CooldownTracker(alerts, default_cooldown_seconds=settings.default_cooldown_seconds),
        publisher,
    )
    scheduler = EvaluationScheduler(
        catalog,
        processor,
        stats=EngineStats(),
        poll_seconds=settings.poll_seconds,
        parallel_workers=settings.parallel_workers,
        rule_timeout_seconds=settings.rule_timeout_seconds,
    )
    return RulesEngine(
        settings=settings,
        catalog=catalog,
        alerts=alerts,
        source=source,
        publisher=publisher,
        scheduler=scheduler,
    )
