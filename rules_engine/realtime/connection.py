"""Conexión a Redis con reconexión perezosa."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import redis

logger = logging.getLogger(__name__)

DEFAULT_RETRY_SECONDS = 5.0


class RedisConnection:
    """Gestiona la conexión a Redis.

    Si la conexión se cae, ``ensure_connected`` reintenta como mucho una vez
    cada ``retry_seconds`` para no bloquear cada publish.
    """

    def __init__(
        self,
        url: str,
        retry_seconds: float = DEFAULT_RETRY_SECONDS,
        client_factory=None,
    ):
        self._url = url
        self._retry_seconds = retry_seconds
        self._client_factory = client_factory or self._default_client
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._last_attempt: float = 0.0
        self._reconnects = 0
        self._lock = threading.Lock()

    def _default_client(self) -> redis.Redis:
        return redis.Redis.from_url(
            self._url,
            decode_responses=False,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def safe_url(self) -> str:
        return self._url.split("@")[-1]

    def connect(self) -> bool:
        """Conecta a Redis."""
        with self._lock:
            return self._connect_locked()

    def _connect_locked(self) -> bool:
        self._last_attempt = time.monotonic()
        try:
            client = self._client_factory()
            client.ping()
            if self._client is not client:
                self._close_client()
            self._client = client
            self._connected = True
            logger.info("[REDIS] Connected: %s", self.safe_url)
            return True
        except Exception as e:
            self._connected = False
            logger.warning("[REDIS] Connection failed: %s", e)
            return False

    def ensure_connected(self) -> bool:
        if self._connected:
            return True
        with self._lock:
            if self._connected:
                return True
            if time.monotonic() - self._last_attempt < self._retry_seconds:
                return False
            ok = self._connect_locked()
            if ok:
                self._reconnects += 1
            return ok

    def mark_broken(self, error: Exception) -> None:
        """Marca la conexión como caída; el siguiente publish reintenta."""
        with self._lock:
            if self._connected:
                logger.warning("[REDIS] Connection lost: %s", error)
            self._connected = False
            self._last_attempt = time.monotonic()

    def disconnect(self) -> None:
        """Desconecta de Redis."""
        with self._lock:
            self._close_client()
            self._connected = False

    def _close_client(self) -> None:
        # Llamar con self._lock tomado.
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.debug("[REDIS] close failed: %s", e)
        self._client = None

    def health_check(self) -> dict:
        return {
            "connected": self._connected,
            "redis_url": self.safe_url,
            "reconnects": self._reconnects,
        }
