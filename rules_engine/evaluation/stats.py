"""Estadísticas del worker de reglas (en memoria + Prometheus)."""

from __future__ import annotations

import threading
import time
from typing import Optional

from prometheus_client import Counter, Gauge

RULES_CYCLES = Counter(
    "rules_engine_cycles_total",
    "Evaluation cycles run by the rules worker",
    ["status"],  # ok, failed
)
RULES_EVALUATED = Counter(
    "rules_engine_rules_total",
    "Rules processed by outcome",
    ["outcome"],  # no_sample, no_match, suppressed, raised, failed
)
ALERTS_PUBLISH = Counter(
    "rules_engine_alert_publish_total",
    "Realtime publish attempts for raised alerts",
    ["status"],  # ok, failed
)
LAST_CYCLE_SECONDS = Gauge(
    "rules_engine_last_cycle_duration_seconds",
    "Duration of the last evaluation cycle",
)


class EngineStats:
    """Contadores thread-safe del motor."""

    def __init__(self):
        self._lock = threading.Lock()
        self.cycles = 0
        self.cycles_failed = 0
        self.cycles_cancelled = 0
        self.rules_evaluated = 0
        self.rules_failed = 0
        self.rules_skipped_no_sample = 0
        self.matches = 0
        self.suppressed = 0
        self.alerts_raised = 0
        self.publish_failed = 0
        self.last_cycle_at: Optional[float] = None
        self.last_cycle_ms: Optional[float] = None
        self.last_error: Optional[str] = None

    def record_outcome(self, outcome: str, published: Optional[bool] = None) -> None:
        with self._lock:
            self.rules_evaluated += 1
            if outcome == "no_sample":
                self.rules_skipped_no_sample += 1
            elif outcome == "suppressed":
                self.matches += 1
                self.suppressed += 1
            elif outcome == "raised":
                self.matches += 1
                self.alerts_raised += 1
                if published is False:
                    self.publish_failed += 1
        RULES_EVALUATED.labels(outcome=outcome).inc()
        if published is not None:
            ALERTS_PUBLISH.labels(status="ok" if published else "failed").inc()

    def record_rule_failure(self, error: BaseException) -> None:
        with self._lock:
            self.rules_failed += 1
            self.last_error = f"{type(error).__name__}: {error}"[:200]
        RULES_EVALUATED.labels(outcome="failed").inc()

    def record_cycle(self, duration_ms: float, *, failed: bool = False,
                     cancelled: bool = False, error: Optional[BaseException] = None) -> None:
        with self._lock:
            self.cycles += 1
            if failed:
                self.cycles_failed += 1
            if cancelled:
                self.cycles_cancelled += 1
            if error is not None:
                self.last_error = f"{type(error).__name__}: {error}"[:200]
            self.last_cycle_at = time.time()
            self.last_cycle_ms = duration_ms
        RULES_CYCLES.labels(status="failed" if failed else "ok").inc()
        LAST_CYCLE_SECONDS.set(duration_ms / 1000.0)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "cycles": self.cycles,
                "cycles_failed": self.cycles_failed,
                "cycles_cancelled": self.cycles_cancelled,
                "rules_evaluated": self.rules_evaluated,
                "rules_failed": self.rules_failed,
                "rules_skipped_no_sample": self.rules_skipped_no_sample,
                "matches": self.matches,
                "suppressed": self.suppressed,
                "alerts_raised": self.alerts_raised,
                "publish_failed": self.publish_failed,
                "last_cycle_at": self.last_cycle_at,
                "last_cycle_ms": self.last_cycle_ms,
                "last_error": self.last_error,
            }
