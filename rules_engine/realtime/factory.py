"""Factory para crear el publicador de alertas según configuración."""

from __future__ import annotations

import logging

from common.config import Settings

from .connection import RedisConnection
from .publisher import (
    AlertPublisher,
    HttpAlertPublisher,
    NullAlertPublisher,
    RedisAlertPublisher,
)

logger = logging.getLogger(__name__)


def create_publisher(settings: Settings) -> AlertPublisher:
    """Crea el publicador indicado por ``RULES_PUBLISHER`` (redis | http | none)."""
    kind = settings.publisher

    if kind == "redis":
        logger.info("[PUBLISH] Using Redis pub/sub publisher channel=%s", settings.alert_channel)
        return RedisAlertPublisher(
            RedisConnection(settings.redis_url),
            channel_prefix=settings.alert_channel,
        )

    if kind == "http":
        logger.info("[PUBLISH] Using HTTP hub publisher url=%s", settings.hub_url)
        return HttpAlertPublisher(settings.hub_url)

    if kind not in ("none", "null", "off", ""):
        logger.warning("[PUBLISH] Unknown RULES_PUBLISHER=%r, realtime push disabled", kind)
    else:
        logger.info("[PUBLISH] Realtime push disabled")
    return NullAlertPublisher()
