"""Tests del pipeline de evaluación: cooldown, wildcard, aislamiento y publish.

Ejecutar:
    pytest tests/test_evaluation.py -v
"""

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import event

from rules_engine.domain.models import Alert, Rule, Sample
from rules_engine.evaluation import (
    CooldownTracker,
    EngineStats,
    EvaluationScheduler,
    KeyedLock,
    RuleOutcome,
    RuleProcessor,
    SchedulerState,
)
from rules_engine.persistence import AlertStore

from .conftest import T0, RecordingPublisher


def _temperature_rule(catalog, **overrides):
    params = dict(
        tenant_id="t1", device_id="dev-1", metric_type="temperature",
        operator=">", threshold=28.0, cooldown_seconds=300,
    )
    params.update(overrides)
    return catalog.create_rule(**params)


# =============================================================================
# TEST 1: END-TO-END
# =============================================================================

class TestEndToEnd:
    """Regla > 28.0 sobre temperatura."""

    def test_matching_sample_raises_one_alert(self, catalog, measurements, scheduler, alert_store, publisher, clock):
        rule = _temperature_rule(catalog, cooldown_seconds=60)
        measurements.add("t1", "dev-1", "temperature", 29.1, T0)

        report = scheduler.run_cycle()

        alerts = alert_store.list_alerts()
        assert report.raised == 1
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.metric_type == "temperature"
        assert alert.value == 29.1
        assert alert.severity == "warning"
        assert alert.rule_id == rule.id
        assert alert.device_id == "dev-1"
        assert alert.time == clock.now
        assert alert.message == "Rule > 28.0 hit for temperature (value=29.1)"
        assert len(publisher.attempts) == 1
        assert publisher.attempts[0].id == alert.id

    def test_non_matching_sample_raises_nothing(self, catalog, measurements, scheduler, alert_store, publisher):
        _temperature_rule(catalog, cooldown_seconds=60)
        measurements.add("t1", "dev-1", "temperature", 27.9, T0)

        report = scheduler.run_cycle()

        assert report.raised == 0
        assert alert_store.list_alerts() == []
        assert publisher.attempts == []

    def test_missing_sample_is_skipped(self, catalog, scheduler, alert_store):
        _temperature_rule(catalog)

        report = scheduler.run_cycle()

        assert report.no_sample == 1
        assert report.failed == 0
        assert alert_store.list_alerts() == []

    def test_unknown_operator_never_alerts(self, catalog, measurements, scheduler, alert_store):
        _temperature_rule(catalog, operator="=>")
        measurements.add("t1", "dev-1", "temperature", 99.0, T0)

        report = scheduler.run_cycle()

        assert report.failed == 0
        assert alert_store.list_alerts() == []


# =============================================================================
# TEST 2: COOLDOWN
# =============================================================================

class TestCooldown:
    """Una alerta por (regla, dispositivo) dentro de la ventana."""

    def test_idempotent_within_window(self, catalog, measurements, scheduler, alert_store, publisher, clock):
        _temperature_rule(catalog, cooldown_seconds=300)

        measurements.add("t1", "dev-1", "temperature", 29.0, T0)
        scheduler.run_cycle()

        clock.advance(10)
        measurements.add("t1", "dev-1", "temperature", 30.0, T0 + timedelta(seconds=10))
        report = scheduler.run_cycle()

        assert report.suppressed == 1
        assert len(alert_store.list_alerts()) == 1
        assert len(publisher.attempts) == 1

        clock.advance(390)  # 400s después de la primera
        measurements.add("t1", "dev-1", "temperature", 31.0, T0 + timedelta(seconds=400))
        report = scheduler.run_cycle()

        assert report.raised == 1
        assert [a.value for a in alert_store.list_alerts()] == [31.0, 29.0]
        assert len(publisher.attempts) == 2

    def test_null_cooldown_uses_default(self, alert_store):
        rule = Rule(id="r-null", tenant_id="t1", device_id="dev-1", metric_type="temperature",
                    operator=">", threshold=0.0, cooldown_seconds=None)
        tracker = CooldownTracker(alert_store, default_cooldown_seconds=120)

        assert tracker.cutoff(rule, T0) == T0 - timedelta(seconds=120)

    def test_zero_cooldown_allows_every_cycle(self, catalog, measurements, scheduler, alert_store, clock):
        _temperature_rule(catalog, cooldown_seconds=0)
        measurements.add("t1", "dev-1", "temperature", 29.0, T0)

        scheduler.run_cycle()
        clock.advance(1)
        scheduler.run_cycle()

        assert len(alert_store.list_alerts()) == 2


# =============================================================================
# TEST 3: WILDCARD
# =============================================================================

class TestWildcardRule:
    """device_id=None se resuelve al dispositivo de la última muestra."""

    def test_alert_attributed_to_concrete_device(self, catalog, measurements, scheduler, alert_store):
        _temperature_rule(catalog, device_id=None)
        measurements.add("t1", "dev-1", "temperature", 20.0, T0)
        measurements.add("t1", "dev-7", "temperature", 35.0, T0 + timedelta(seconds=1))

        scheduler.run_cycle()

        alerts = alert_store.list_alerts()
        assert len(alerts) == 1
        assert alerts[0].device_id == "dev-7"

    def test_devices_have_independent_cooldowns(self, catalog, measurements, scheduler, alert_store, clock):
        _temperature_rule(catalog, device_id=None, cooldown_seconds=300)

        measurements.add("t1", "dev-1", "temperature", 30.0, T0)
        scheduler.run_cycle()

        clock.advance(10)
        measurements.add("t1", "dev-2", "temperature", 30.0, T0 + timedelta(seconds=10))
        scheduler.run_cycle()

        clock.advance(10)
        measurements.add("t1", "dev-1", "temperature", 30.0, T0 + timedelta(seconds=20))
        scheduler.run_cycle()

        devices = sorted(a.device_id for a in alert_store.list_alerts())
        assert devices == ["dev-1", "dev-2"]


# =============================================================================
# TEST 4: AISLAMIENTO DE FALLOS
# =============================================================================

class TestFaultIsolation:
    """Un fallo en una regla no impide evaluar las demás."""

    def test_failing_rule_does_not_block_others(self, catalog, measurements, source, alert_store, publisher, clock):
        bad = _temperature_rule(catalog, tenant_id="broken")
        good = _temperature_rule(catalog, tenant_id="t1")
        measurements.add("t1", "dev-1", "temperature", 30.0, T0)

        flaky_source = MagicMock(wraps=source)

        def latest(tenant_id, device_id, metric_type):
            if tenant_id == "broken":
                raise ConnectionError("ingest db unreachable")
            return source.latest_sample(tenant_id, device_id, metric_type)

        flaky_source.latest_sample.side_effect = latest
        processor = RuleProcessor(flaky_source, CooldownTracker(alert_store), publisher, clock=clock)
        stats = EngineStats()
        scheduler = EvaluationScheduler(catalog, processor, stats=stats)

        report = scheduler.run_cycle()

        assert report.failed == 1
        assert report.raised == 1
        assert [a.rule_id for a in alert_store.list_alerts()] == [good.id]
        assert stats.rules_failed == 1
        assert bad.id not in [a.rule_id for a in alert_store.list_alerts()]

    def test_catalog_failure_skips_cycle(self, processor):
        catalog = MagicMock()
        catalog.list_enabled_rules.side_effect = ConnectionError("rules db down")
        stats = EngineStats()
        scheduler = EvaluationScheduler(catalog, processor, stats=stats)

        report = scheduler.run_cycle()

        assert report.error is not None
        assert "rules db down" in report.error
        assert stats.cycles_failed == 1
        assert scheduler.state is SchedulerState.IDLE


# =============================================================================
# TEST 5: PUBLISH BEST-EFFORT
# =============================================================================

class TestPublishFailure:
    """El fallo de publish no borra ni duplica la alerta guardada."""

    @pytest.mark.parametrize("publisher_kwargs", [{"fail": True}, {"raise_error": True}])
    def test_alert_remains_stored(self, catalog, measurements, source, alert_store, clock, publisher_kwargs):
        _temperature_rule(catalog)
        measurements.add("t1", "dev-1", "temperature", 29.1, T0)
        failing = RecordingPublisher(**publisher_kwargs)
        stats = EngineStats()
        scheduler = EvaluationScheduler(
            catalog,
            RuleProcessor(source, CooldownTracker(alert_store), failing, clock=clock),
            stats=stats,
        )

        report = scheduler.run_cycle()
        clock.advance(10)
        scheduler.run_cycle()

        assert report.raised == 1
        assert report.failed == 0
        assert len(alert_store.list_alerts()) == 1
        # Sin reintento dentro del ciclo ni en el siguiente (cooldown)
        assert len(failing.attempts) == 1
        assert stats.publish_failed == 1

    def test_processor_reports_publish_result(self, catalog, measurements, source, alert_store, clock):
        rule = _temperature_rule(catalog)
        measurements.add("t1", "dev-1", "temperature", 29.1, T0)
        processor = RuleProcessor(source, CooldownTracker(alert_store), RecordingPublisher(fail=True), clock=clock)

        result = processor.process(rule)

        assert result.outcome is RuleOutcome.RAISED
        assert result.published is False
        assert result.alert is not None


# =============================================================================
# TEST 6: CONCURRENCIA
# =============================================================================

class TestConcurrency:
    """Check-then-insert serializado por (regla, dispositivo)."""

    def test_concurrent_gate_inserts_once(self, catalog, alert_store, clock):
        rule = _temperature_rule(catalog)
        tracker = CooldownTracker(alert_store)
        sample = Sample("t1", "dev-1", "temperature", 30.0, T0)
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(tracker.record_unless_suppressed(rule, Alert.from_match(rule, sample), clock.now))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r is not None) == 1
        assert len(alert_store.list_alerts()) == 1

    def test_independent_trackers_insert_once(self, catalog, rules_db, clock):
        """Dos procesos (API + worker) = dos trackers con locks propios, misma BD."""
        rule = _temperature_rule(catalog)
        sample = Sample("t1", "dev-1", "temperature", 30.0, T0)

        # Ensancha la ventana entre la consulta de recientes y el INSERT.
        def slow_alert_select(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("SELECT") and "alerts" in statement:
                time.sleep(0.1)

        event.listen(rules_db, "before_cursor_execute", slow_alert_select)
        trackers = [CooldownTracker(AlertStore(rules_db)) for _ in range(2)]
        barrier = threading.Barrier(len(trackers))
        results = []

        def worker(tracker):
            barrier.wait()
            results.append(tracker.record_unless_suppressed(rule, Alert.from_match(rule, sample), clock.now))

        threads = [threading.Thread(target=worker, args=(t,)) for t in trackers]
        try:
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        finally:
            event.remove(rules_db, "before_cursor_execute", slow_alert_select)

        assert sum(1 for r in results if r is not None) == 1
        assert len(AlertStore(rules_db).list_alerts()) == 1

    def test_parallel_cycle_matches_sequential(self, catalog, measurements, processor, alert_store):
        for i in range(6):
            _temperature_rule(catalog, device_id=f"dev-{i}")
            measurements.add("t1", f"dev-{i}", "temperature", 30.0 + i, T0)

        scheduler = EvaluationScheduler(catalog, processor, parallel_workers=3)
        report = scheduler.run_cycle()

        assert report.raised == 6
        assert len(alert_store.list_alerts()) == 6

    def test_slow_rule_times_out_as_rule_fault(self, catalog):
        slow = _temperature_rule(catalog, device_id="slow")
        fast = _temperature_rule(catalog, device_id="fast")
        release = threading.Event()
        slow_finished = threading.Event()

        processor = MagicMock()

        def process(rule):
            if rule.id == slow.id:
                release.wait(5)
                slow_finished.set()
            return MagicMock(outcome=RuleOutcome.NO_MATCH, published=None)

        processor.process.side_effect = process
        stats = EngineStats()
        scheduler = EvaluationScheduler(catalog, processor, stats=stats,
                                        parallel_workers=2, rule_timeout_seconds=0.2)
        try:
            report = scheduler.run_cycle()
            # El hilo de la regla expirada sigue vivo tras cerrar el ciclo.
            assert not slow_finished.is_set()
        finally:
            release.set()
        assert slow_finished.wait(2.0)

        assert report.failed == 1
        assert report.processed == 1
        assert stats.rules_failed == 1
        assert "exceeded" in stats.last_error
        assert {c.args[0].id for c in processor.process.call_args_list} == {slow.id, fast.id}

    def test_keyed_lock_releases_entries(self):
        locks = KeyedLock()
        with locks.hold(("r1", "d1")):
            assert len(locks) == 1
        assert len(locks) == 0


# =============================================================================
# TEST 7: CICLO DE VIDA DEL SCHEDULER
# =============================================================================

class TestSchedulerLifecycle:

    def test_start_runs_cycles_and_stops(self, catalog, processor):
        stats = EngineStats()
        scheduler = EvaluationScheduler(catalog, processor, stats=stats, poll_seconds=0.01)

        scheduler.start()
        deadline = time.monotonic() + 2.0
        while stats.cycles < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        scheduler.stop(timeout=2.0)

        assert stats.cycles >= 2
        assert scheduler.is_running is False
        assert scheduler.state is SchedulerState.STOPPED

    def test_stop_abandons_remaining_rules(self, catalog):
        for i in range(3):
            _temperature_rule(catalog, device_id=f"dev-{i}")

        scheduler = None
        processor = MagicMock()

        def process(rule):
            scheduler.request_stop()
            return MagicMock(outcome=RuleOutcome.NO_SAMPLE, published=None)

        processor.process.side_effect = process
        scheduler = EvaluationScheduler(catalog, processor)

        report = scheduler.run_cycle()

        assert report.cancelled is True
        assert report.processed == 1
        assert processor.process.call_count == 1

    def test_loop_survives_cycle_failures(self, processor):
        catalog = MagicMock()
        calls = {"n": 0}

        def list_enabled_rules():
            calls["n"] += 1
            if calls["n"] <= 2:
                raise ConnectionError("down")
            return []

        catalog.list_enabled_rules.side_effect = list_enabled_rules
        stats = EngineStats()
        scheduler = EvaluationScheduler(catalog, processor, stats=stats, poll_seconds=0.01)

        scheduler.start()
        deadline = time.monotonic() + 2.0
        while stats.cycles < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        scheduler.stop(timeout=2.0)

        assert stats.cycles_failed == 2
        assert stats.cycles >= 3

    def test_expired_stop_keeps_loop_and_blocks_restart(self, catalog):
        _temperature_rule(catalog)
        entered = threading.Event()
        release = threading.Event()

        processor = MagicMock()

        def process(rule):
            entered.set()
            release.wait(5)
            return MagicMock(outcome=RuleOutcome.NO_MATCH, published=None)

        processor.process.side_effect = process
        scheduler = EvaluationScheduler(catalog, processor, poll_seconds=0.01)

        scheduler.start()
        assert entered.wait(2.0)
        try:
            scheduler.stop(timeout=0.05)

            assert scheduler.is_running is True
            assert scheduler.state is not SchedulerState.STOPPED
            with pytest.raises(RuntimeError):
                scheduler.start()
        finally:
            release.set()

        scheduler.stop(timeout=2.0)
        assert scheduler.is_running is False
        assert scheduler.state is SchedulerState.STOPPED
        assert processor.process.call_count == 1
