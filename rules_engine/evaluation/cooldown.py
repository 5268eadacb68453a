"""Cooldown por (regla, dispositivo) respaldado por el historial de alertas.

No hay cache propia: la consulta va siempre contra el AlertStore. Dentro
del proceso, el check-then-insert de una pareja (rule_id, device_id) se
serializa con un lock por clave. Entre procesos (API + worker, varios
workers de uvicorn) lo garantiza ``AlertStore.record_alert_unless_recent``,
que repite la consulta y el INSERT en una sola transacción bloqueada.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Hashable, Iterator, Optional

from ..domain.models import DEFAULT_COOLDOWN_SECONDS, Alert, Rule
from ..persistence.alert_store import AlertStore

logger = logging.getLogger(__name__)


class KeyedLock:
    """Un ``threading.Lock`` por clave, liberado cuando nadie lo usa."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [lock, refcount]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class CooldownTracker:
    """Gate de supresión de alertas duplicadas."""

    def __init__(self, store: AlertStore, default_cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS):
        self._store = store
        self._default = default_cooldown_seconds
        self._locks = KeyedLock()

    def cutoff(self, rule: Rule, now: datetime) -> datetime:
        return now - timedelta(seconds=rule.effective_cooldown(self._default))

    def has_recent_alert(self, rule_id: str, device_id: str, since: datetime) -> bool:
        return self._store.has_recent_alert(rule_id, device_id, since)

    def is_suppressed(self, rule: Rule, device_id: str, now: datetime) -> bool:
        return self.has_recent_alert(rule.id, device_id, self.cutoff(rule, now))

    def record_unless_suppressed(self, rule: Rule, alert: Alert, now: datetime) -> Optional[Alert]:
        """Guarda ``alert`` salvo que haya otra dentro de la ventana.

        Devuelve la alerta guardada o None si quedó suprimida.
        """
        with self._locks.hold((rule.id, alert.device_id)):
            if self.is_suppressed(rule, alert.device_id, now):
                logger.debug(
                    "[RULES] Suppressed by cooldown rule=%s device=%s cooldown=%ss",
                    rule.id, alert.device_id, rule.effective_cooldown(self._default),
                )
                return None
            stored = self._store.record_alert_unless_recent(alert.with_identity(now), self.cutoff(rule, now))
            if stored is None:
                logger.debug(
                    "[RULES] Suppressed by cooldown (concurrent writer) rule=%s device=%s",
                    rule.id, alert.device_id,
                )
            return stored
