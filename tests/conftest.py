"""Fixtures compartidos: BDs SQLite temporales, reloj controlable, publicador fake."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy import create_engine, insert

from rules_engine.domain.models import Alert
from rules_engine.evaluation import CooldownTracker, EngineStats, EvaluationScheduler, RuleProcessor
from rules_engine.persistence import AlertStore, MeasurementSource, RuleCatalog
from rules_engine.persistence.tables import ingest_metadata, measurements_table, rules_metadata
from rules_engine.realtime.publisher import AlertPublisher

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _sqlite_engine(path):
    # Fichero y no :memory: para que cada hilo tenga su propia conexión.
    return create_engine(f"sqlite:///{path}", future=True)


class FakeClock:
    """Reloj manual para simular el paso del tiempo entre ciclos."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingPublisher(AlertPublisher):
    """Publicador que guarda lo publicado; puede simular fallos."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.attempts: List[Alert] = []

    def publish(self, alert: Alert) -> bool:
        self.attempts.append(alert)
        if self.raise_error:
            raise ConnectionError("hub down")
        return not self.fail


class MeasurementWriter:
    """Simula el ingest gateway escribiendo en ``measurements``."""

    def __init__(self, engine):
        self._engine = engine

    def add(self, tenant_id: str, device_id: str, metric_type: str, value: float,
            time: Optional[datetime] = None) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                insert(measurements_table).values(
                    tenant_id=tenant_id,
                    device_id=device_id,
                    type=metric_type,
                    value=value,
                    time=time or T0,
                )
            )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def rules_db(tmp_path):
    engine = _sqlite_engine(tmp_path / "rules.db")
    rules_metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def ingest_db(tmp_path):
    engine = _sqlite_engine(tmp_path / "ingest.db")
    ingest_metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def catalog(rules_db) -> RuleCatalog:
    return RuleCatalog(rules_db)


@pytest.fixture
def alert_store(rules_db) -> AlertStore:
    return AlertStore(rules_db)


@pytest.fixture
def source(ingest_db) -> MeasurementSource:
    return MeasurementSource(ingest_db)


@pytest.fixture
def measurements(ingest_db) -> MeasurementWriter:
    return MeasurementWriter(ingest_db)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def processor(source, alert_store, publisher, clock) -> RuleProcessor:
    return RuleProcessor(source, CooldownTracker(alert_store), publisher, clock=clock)


@pytest.fixture
def scheduler(catalog, processor) -> EvaluationScheduler:
    return EvaluationScheduler(catalog, processor, stats=EngineStats(), poll_seconds=0.05)
