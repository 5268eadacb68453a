"""Esquema SQLAlchemy Core para reglas, alertas y mediciones.

``rules`` y ``alerts`` viven en la BD de reglas (lectura/escritura).
``measurements`` es propiedad del ingest gateway; aquí solo se lee.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger(__name__)


class UtcDateTime(TypeDecorator):
    """Guarda siempre UTC y devuelve datetimes aware.

    SQLite pierde el tzinfo; Postgres lo conserva. Normalizamos en ambos sentidos
    para que las comparaciones de cooldown sean consistentes.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


rules_metadata = MetaData()
ingest_metadata = MetaData()


rules_table = Table(
    "rules",
    rules_metadata,
    Column("id", String(36), primary_key=True),
    Column("tenant_id", String(64), nullable=False),
    # NULL => aplica a todos los dispositivos del tenant
    Column("device_id", String(64), nullable=True),
    Column("type", String(64), nullable=False),
    Column("operator", String(8), nullable=False, default=">"),
    Column("threshold", Float, nullable=False),
    Column("cooldown_seconds", Integer, nullable=True, default=300),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("created_at", UtcDateTime, nullable=False),
    Index("ix_rules_scope", "tenant_id", "device_id", "type", "enabled"),
)


alerts_table = Table(
    "alerts",
    rules_metadata,
    Column("id", String(36), primary_key=True),
    Column("rule_id", String(36), nullable=False),
    Column("tenant_id", String(64), nullable=False),
    Column("device_id", String(64), nullable=False),
    Column("type", String(64), nullable=False),
    Column("value", Float, nullable=False),
    Column("time", UtcDateTime, nullable=False),
    Column("severity", String(16), nullable=False, default="warning"),
    Column("message", Text, nullable=False, default=""),
    Index("ix_alerts_scope_time", "tenant_id", "device_id", "type", "time"),
    Index("ix_alerts_rule_device_time", "rule_id", "device_id", "time"),
)


measurements_table = Table(
    "measurements",
    ingest_metadata,
    Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
    Column("time", UtcDateTime, nullable=False),
    Column("tenant_id", String(64), nullable=False),
    Column("device_id", String(64), nullable=False),
    Column("type", String(64), nullable=False),
    Column("value", Float, nullable=False),
)


def ensure_rules_schema(engine: Engine) -> None:
    """Crea ``rules`` y ``alerts`` si no existen. Idempotente."""
    logger.info("[DB] Ensuring rules schema exists")
    rules_metadata.create_all(engine)
