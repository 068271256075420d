"""Redis Pub/Sub publisher for chat events consumed by the notification subsystem."""
from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as aioredis

from tenant_chat.infrastructure.bus.serializer import serialize_event

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(event_type, payload)
        receivers = await self._redis.publish(self._channel, raw)
        logger.debug("Published %s to %s (%d receivers)", event_type, self._channel, receivers)
