"""Publicadores de alertas al canal realtime.

Best effort: ``publish`` devuelve False en lugar de lanzar. La alerta ya
está guardada cuando se llama, así que un fallo solo pierde la notificación.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..domain.models import Alert
from .connection import RedisConnection

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "alerts"
HUB_METHOD = "PublishAlert"


class AlertPublisher(ABC):
    """Contrato del publicador realtime."""

    @abstractmethod
    def publish(self, alert: Alert) -> bool:
        ...

    def start(self) -> None:
        pass

    def close(self) -> None:
        pass

    def health_check(self) -> dict:
        return {"type": type(self).__name__}


class NullAlertPublisher(AlertPublisher):
    """Publicador deshabilitado: solo loguea."""

    def publish(self, alert: Alert) -> bool:
        logger.debug("[PUBLISH] Disabled, alert=%s not pushed", alert.id)
        return True


class RedisAlertPublisher(AlertPublisher):
    """Publica alertas en Redis pub/sub.

    Canales: ``{prefix}:{tenant_id}`` para suscriptores del tenant y
    ``{prefix}`` para consumidores globales (p.ej. el realtime hub).
    """

    def __init__(self, connection: RedisConnection, channel_prefix: str = DEFAULT_CHANNEL):
        self._conn = connection
        self._prefix = channel_prefix
        self._published = 0
        self._failed = 0

    def start(self) -> None:
        if not self._conn.connect():
            logger.warning(
                "[PUBLISH] Redis %s unavailable. Alerts will be stored but not pushed until reconnected.",
                self._conn.safe_url,
            )

    def close(self) -> None:
        self._conn.disconnect()

    def channels_for(self, alert: Alert) -> list[str]:
        return [f"{self._prefix}:{alert.tenant_id}", self._prefix]

    def publish(self, alert: Alert) -> bool:
        if not self._conn.ensure_connected():
            self._failed += 1
            logger.warning("[PUBLISH] Redis not connected, alert=%s not pushed", alert.id)
            return False

        data = json.dumps(alert.to_payload())
        try:
            for channel in self.channels_for(alert):
                self._conn.client.publish(channel, data)
        except Exception as e:
            self._conn.mark_broken(e)
            self._failed += 1
            logger.warning("[PUBLISH] Redis publish failed alert=%s: %s", alert.id, e)
            return False

        self._published += 1
        logger.debug("[PUBLISH] alert=%s tenant=%s pushed", alert.id, alert.tenant_id)
        return True

    def health_check(self) -> dict:
        health = self._conn.health_check()
        health.update(
            {
                "type": type(self).__name__,
                "channel_prefix": self._prefix,
                "published": self._published,
                "failed": self._failed,
            }
        )
        return health


class HttpAlertPublisher(AlertPublisher):
    """Invoca ``PublishAlert`` en el realtime hub vía HTTP.

    Reutiliza una ``requests.Session`` (keep-alive); si el hub no responde
    la alerta sigue consultable en /alerts.
    """

    def __init__(
        self,
        hub_url: str,
        timeout_seconds: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self._url = f"{hub_url.rstrip('/')}/{HUB_METHOD}"
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._published = 0
        self._failed = 0

    def close(self) -> None:
        self._session.close()

    def publish(self, alert: Alert) -> bool:
        try:
            response = self._session.post(
                self._url,
                json=alert.to_payload(),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            self._failed += 1
            logger.warning("[PUBLISH] Hub unreachable alert=%s: %s", alert.id, e)
            return False

        if not response.ok:
            self._failed += 1
            logger.warning(
                "[PUBLISH] Hub rejected alert=%s: %s %s",
                alert.id, response.status_code, response.text[:200],
            )
            return False

        self._published += 1
        logger.debug("[PUBLISH] alert=%s pushed to hub", alert.id)
        return True

    def health_check(self) -> dict:
        return {
            "type": type(self).__name__,
            "hub_url": self._url,
            "published": self._published,
            "failed": self._failed,
        }
