"""Realtime layer - publicación best-effort de alertas."""

from .connection import RedisConnection
from .factory import create_publisher
from .publisher import (
    AlertPublisher,
    HttpAlertPublisher,
    NullAlertPublisher,
    RedisAlertPublisher,
)

__all__ = [
    "AlertPublisher",
    "HttpAlertPublisher",
    "NullAlertPublisher",
    "RedisAlertPublisher",
    "RedisConnection",
    "create_publisher",
]
