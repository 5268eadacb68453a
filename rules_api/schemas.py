from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rules_engine.domain.models import Alert, Rule


class RuleCreateIn(BaseModel):
    # { "tenantId":"...", "deviceId":"...", "type":"temperature", "op":">",
    #   "threshold": 28.0, "cooldownSeconds": 300, "enabled": true }
    model_config = ConfigDict(populate_by_name=True)

    tenant_id: str = Field(..., alias="tenantId", min_length=1)
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    type: str = Field(..., min_length=1)
    op: str = Field(..., min_length=1)
    threshold: float
    cooldown_seconds: Optional[int] = Field(default=None, alias="cooldownSeconds", ge=0)
    enabled: Optional[bool] = None

    @field_validator("type")
    @classmethod
    def _type_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("type must not be blank")
        return v.strip()

    @field_validator("device_id")
    @classmethod
    def _empty_device_is_wildcard(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v


class RuleOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    tenant_id: str = Field(..., alias="tenantId")
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    type: str
    operator: str
    threshold: float
    cooldown_seconds: Optional[int] = Field(default=None, alias="cooldownSeconds")
    enabled: bool
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_rule(cls, rule: Rule) -> "RuleOut":
        return cls(
            id=rule.id,
            tenant_id=rule.tenant_id,
            device_id=rule.device_id,
            type=rule.metric_type,
            operator=rule.operator,
            threshold=rule.threshold,
            cooldown_seconds=rule.cooldown_seconds,
            enabled=rule.enabled,
            created_at=rule.created_at,
        )


class AlertOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    rule_id: str = Field(..., alias="ruleId")
    tenant_id: str = Field(..., alias="tenantId")
    device_id: str = Field(..., alias="deviceId")
    type: str
    value: float
    time: datetime
    severity: str
    message: str

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertOut":
        return cls(
            id=alert.id,
            rule_id=alert.rule_id,
            tenant_id=alert.tenant_id,
            device_id=alert.device_id,
            type=alert.metric_type,
            value=alert.value,
            time=alert.time,
            severity=alert.severity,
            message=alert.message,
        )


class ServiceInfo(BaseModel):
    service: str
    status: str
