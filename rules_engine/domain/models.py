"""Modelos de dominio del motor de reglas."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from .operators import ComparisonOperator

DEFAULT_COOLDOWN_SECONDS = 300
DEFAULT_SEVERITY = "warning"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Rule:
    """Condición de umbral para (tenant, device|*, tipo de métrica).

    ``device_id=None`` aplica a todos los dispositivos del tenant para ese tipo.
    """
    id: str
    tenant_id: str
    device_id: Optional[str]
    metric_type: str
    operator: str
    threshold: float
    cooldown_seconds: Optional[int] = DEFAULT_COOLDOWN_SECONDS
    enabled: bool = True
    created_at: datetime = field(default_factory=utc_now)

    @property
    def comparison(self) -> ComparisonOperator:
        return ComparisonOperator.parse(self.operator)

    @property
    def is_wildcard(self) -> bool:
        return self.device_id is None

    def effective_cooldown(self, default: int = DEFAULT_COOLDOWN_SECONDS) -> int:
        if self.cooldown_seconds is None:
            return default
        return max(0, int(self.cooldown_seconds))

    def describe(self) -> str:
        device = self.device_id or "*"
        return f"rule={self.id} tenant={self.tenant_id} device={device} type={self.metric_type}"


@dataclass(frozen=True)
class Sample:
    """Última lectura conocida para un scope (externa, solo lectura)."""
    tenant_id: str
    device_id: str
    metric_type: str
    value: float
    time: datetime


@dataclass(frozen=True)
class Alert:
    """Alerta inmutable creada cuando una regla se cumple fuera de cooldown."""
    rule_id: str
    tenant_id: str
    device_id: str
    metric_type: str
    value: float
    message: str
    severity: str = DEFAULT_SEVERITY
    id: Optional[str] = None
    time: Optional[datetime] = None

    @classmethod
    def from_match(cls, rule: Rule, sample: Sample) -> "Alert":
        # device_id se toma de la muestra: siempre concreto aunque la regla sea wildcard.
        return cls(
            rule_id=rule.id,
            tenant_id=rule.tenant_id,
            device_id=sample.device_id,
            metric_type=rule.metric_type,
            value=sample.value,
            message=(
                f"Rule {rule.operator} {rule.threshold} hit for "
                f"{rule.metric_type} (value={sample.value})"
            ),
        )

    def with_identity(self, now: Optional[datetime] = None) -> "Alert":
        """Asigna id y timestamp si todavía no los tiene."""
        return replace(
            self,
            id=self.id or new_id(),
            time=self.time or now or utc_now(),
        )

    def to_payload(self) -> dict:
        """Formato publicado al canal realtime (camelCase, igual que el hub)."""
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "deviceId": self.device_id,
            "type": self.metric_type,
            "value": self.value,
            "time": self.time.isoformat() if self.time else None,
            "ruleId": self.rule_id,
            "severity": self.severity,
            "message": self.message,
        }
