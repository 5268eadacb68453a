"""Procesamiento de UNA regla: muestra -> evaluación -> cooldown -> alerta -> push."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from ..domain.models import Alert, Rule, utc_now
from ..domain.operators import matches
from ..persistence.measurement_source import MeasurementSource
from ..realtime.publisher import AlertPublisher
from .cooldown import CooldownTracker

logger = logging.getLogger(__name__)


class RuleOutcome(str, Enum):
    NO_SAMPLE = "no_sample"
    NO_MATCH = "no_match"
    SUPPRESSED = "suppressed"
    RAISED = "raised"


@dataclass(frozen=True)
class RuleResult:
    rule_id: str
    outcome: RuleOutcome
    alert: Optional[Alert] = None
    published: Optional[bool] = None


class RuleProcessor:
    """Evalúa una regla contra la última muestra de su scope.

    Los errores de infraestructura de la muestra o del store se propagan;
    el scheduler los aísla por regla. El publish nunca propaga.
    """

    def __init__(
        self,
        source: MeasurementSource,
        cooldown: CooldownTracker,
        publisher: AlertPublisher,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._source = source
        self._cooldown = cooldown
        self._publisher = publisher
        self._clock = clock

    def process(self, rule: Rule) -> RuleResult:
        sample = self._source.latest_sample(rule.tenant_id, rule.device_id, rule.metric_type)
        if sample is None:
            return RuleResult(rule.id, RuleOutcome.NO_SAMPLE)

        if not matches(rule.comparison, sample.value, rule.threshold):
            return RuleResult(rule.id, RuleOutcome.NO_MATCH)

        now = self._clock()
        stored = self._cooldown.record_unless_suppressed(rule, Alert.from_match(rule, sample), now)
        if stored is None:
            return RuleResult(rule.id, RuleOutcome.SUPPRESSED)

        logger.info(
            "[RULES] Alert raised %s value=%s op=%s threshold=%s",
            rule.describe(), sample.value, rule.operator, rule.threshold,
        )
        return RuleResult(rule.id, RuleOutcome.RAISED, alert=stored, published=self._publish(stored))

    def _publish(self, alert: Alert) -> bool:
        try:
            ok = self._publisher.publish(alert)
        except Exception as e:
            logger.warning("[PUBLISH] Failed to push alert=%s (will remain stored): %s", alert.id, e)
            return False
        if not ok:
            logger.warning("[PUBLISH] Alert=%s not pushed (will remain stored)", alert.id)
        return bool(ok)
