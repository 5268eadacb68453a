"""Scheduler del motor de reglas: loop periódico con aislamiento por regla.

Estados: IDLE (esperando el siguiente tick) y EVALUATING (un ciclo en curso).
Los ciclos no se solapan en el loop. ``stop()`` se respeta entre reglas y
entre ticks; una escritura de alerta en curso siempre termina.

Límite del modo paralelo con ``rule_timeout_seconds``: la regla que expira
se cuenta como fallo pero su hilo no se mata, así que puede seguir
corriendo durante el ciclo siguiente. No duplica alertas (el
check-then-insert está serializado en el AlertStore), pero esa regla sí
puede evaluarse dos veces a la vez.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..domain.models import Rule
from ..persistence.rule_catalog import RuleCatalog
from .processor import RuleOutcome, RuleProcessor, RuleResult
from .stats import EngineStats

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 10.0


class SchedulerState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    STOPPED = "stopped"


class RuleEvaluationTimeout(Exception):
    """Una regla superó el techo de tiempo configurado."""

    def __init__(self, rule_id: str, timeout_seconds: float):
        self.rule_id = rule_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"rule {rule_id} exceeded {timeout_seconds:.1f}s")


@dataclass
class CycleReport:
    rules_total: int = 0
    processed: int = 0
    failed: int = 0
    raised: int = 0
    suppressed: int = 0
    no_sample: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    duration_ms: float = 0.0

    def add(self, result: RuleResult) -> None:
        self.processed += 1
        if result.outcome is RuleOutcome.RAISED:
            self.raised += 1
        elif result.outcome is RuleOutcome.SUPPRESSED:
            self.suppressed += 1
        elif result.outcome is RuleOutcome.NO_SAMPLE:
            self.no_sample += 1


class EvaluationScheduler:
    """Worker de evaluación periódica.

    Uso:
        scheduler = EvaluationScheduler(catalog, processor)
        scheduler.start()      # hilo propio
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        catalog: RuleCatalog,
        processor: RuleProcessor,
        stats: Optional[EngineStats] = None,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        parallel_workers: int = 1,
        rule_timeout_seconds: float = 0.0,
    ):
        self._catalog = catalog
        self._processor = processor
        self.stats = stats or EngineStats()
        self._poll_seconds = poll_seconds
        self._workers = max(1, parallel_workers)
        self._rule_timeout = rule_timeout_seconds if rule_timeout_seconds > 0 else None
        self._stop_event = threading.Event()
        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> SchedulerState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SchedulerState) -> None:
        with self._state_lock:
            self._state = state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            if self._stop_event.is_set():
                # stop() expiró con el loop anterior vivo; dos loops solaparían ciclos.
                raise RuntimeError("previous rules worker loop is still running")
            return
        self._stop_event.clear()
        self._set_state(SchedulerState.IDLE)
        self._thread = threading.Thread(target=self.run_forever, daemon=True, name="rules-worker")
        self._thread.start()

    def request_stop(self) -> None:
        """Pide parar sin esperar (p.ej. desde un signal handler)."""
        self._stop_event.set()

    def stop(self, timeout: Optional[float] = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # Se conserva la referencia: start() no debe lanzar otro loop.
                logger.warning("[RULES] Worker did not stop within %.1fs", timeout)
                return
            self._thread = None
        self._set_state(SchedulerState.STOPPED)
        logger.info("[RULES] Worker stopped. %s", self.stats.to_dict())

    def run_forever(self) -> None:
        logger.info(
            "[RULES] Rules engine started (poll=%.1fs, workers=%d, mode=instant)",
            self._poll_seconds, self._workers,
        )
        while not self._stop_event.is_set():
            # run_cycle ya captura fallos de ciclo; esto cubre bugs propios del loop.
            try:
                self.run_cycle()
            except Exception:
                logger.exception("[RULES] Unhandled error during rule evaluation cycle.")
            if self._stop_event.wait(self._poll_seconds):
                break
        self._set_state(SchedulerState.STOPPED)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleReport:
        """Un ciclo completo: todas las reglas habilitadas."""
        report = CycleReport()
        t0 = time.monotonic()
        self._set_state(SchedulerState.EVALUATING)
        try:
            try:
                rules = self._catalog.list_enabled_rules()
            except Exception as e:
                logger.exception("[RULES] Failed to load enabled rules; skipping cycle")
                report.error = f"{type(e).__name__}: {e}"
                report.duration_ms = (time.monotonic() - t0) * 1000
                self.stats.record_cycle(report.duration_ms, failed=True, error=e)
                return report

            report.rules_total = len(rules)
            if self._workers == 1:
                self._run_sequential(rules, report)
            else:
                self._run_parallel(rules, report)

            report.duration_ms = (time.monotonic() - t0) * 1000
            self.stats.record_cycle(report.duration_ms, cancelled=report.cancelled)
            logger.info(
                "[RULES] cycle ms=%.1f rules=%d processed=%d raised=%d suppressed=%d "
                "no_sample=%d failed=%d cancelled=%s",
                report.duration_ms, report.rules_total, report.processed, report.raised,
                report.suppressed, report.no_sample, report.failed, report.cancelled,
            )
            return report
        finally:
            if not self._stop_event.is_set():
                self._set_state(SchedulerState.IDLE)

    def _run_sequential(self, rules: list[Rule], report: CycleReport) -> None:
        for rule in rules:
            if self._stop_event.is_set():
                report.cancelled = True
                logger.info("[RULES] Stop requested, abandoning cycle after %d rules", report.processed)
                return
            try:
                result = self._processor.process(rule)
            except Exception as e:
                self._on_rule_failure(rule, e, report)
                continue
            self._on_rule_result(result, report)

    def _run_parallel(self, rules: list[Rule], report: CycleReport) -> None:
        pool = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="rules-eval")
        try:
            futures: list[tuple[Rule, Future]] = [
                (rule, pool.submit(self._process_unless_stopped, rule)) for rule in rules
            ]
            for rule, fut in futures:
                try:
                    result = fut.result(timeout=self._rule_timeout)
                except FutureTimeout:
                    self._on_rule_failure(rule, RuleEvaluationTimeout(rule.id, self._rule_timeout), report)
                    continue
                except Exception as e:
                    self._on_rule_failure(rule, e, report)
                    continue
                if result is None:
                    report.cancelled = True
                    continue
                self._on_rule_result(result, report)
        finally:
            # No esperar hilos colgados en I/O: ya se contaron como fallo.
            pool.shutdown(wait=False, cancel_futures=True)

    def _process_unless_stopped(self, rule: Rule) -> Optional[RuleResult]:
        if self._stop_event.is_set():
            return None
        return self._processor.process(rule)

    def _on_rule_result(self, result: RuleResult, report: CycleReport) -> None:
        report.add(result)
        self.stats.record_outcome(result.outcome.value, result.published)

    def _on_rule_failure(self, rule: Rule, error: Exception, report: CycleReport) -> None:
        report.failed += 1
        self.stats.record_rule_failure(error)
        logger.error("[RULES] Rule evaluation failed %s err=%s", rule.describe(), error, exc_info=error)

    def health_check(self) -> dict:
        return {
            "state": self.state.value,
            "running": self.is_running,
            "poll_seconds": self._poll_seconds,
            "parallel_workers": self._workers,
            "rule_timeout_seconds": self._rule_timeout,
            "stats": self.stats.to_dict(),
        }
