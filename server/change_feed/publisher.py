"""
Change Publisher

Publishes row-level changes to the per-table Redis topics read by
RedisChangeFeed. This is the producing side of the feed: a database
trigger bridge, a backfill script, or mock_changes.py.

Usage:
    publisher = ChangePublisher(redis_url="redis://localhost:6379/0")
    await publisher.connect()
    await publisher.publish(ChangePayload(schema="public", table="requests",
                                          event_type="INSERT", new={...}))
    await publisher.close()

Context manager usage:
    async with ChangePublisher(redis_url=...) as pub:
        await pub.publish(payload)
"""
from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .models import ChangePayload
from .serializer import serialize, topic_for

logger = logging.getLogger(__name__)


class PublisherError(Exception):
    """Raised when a publish operation fails."""


class ChangePublisher:
    """Publishes ChangePayloads to realtime:{schema}:{table}."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: Redis | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection."""
        self._redis = Redis.from_url(self._redis_url, decode_responses=False)
        try:
            await self._redis.ping()
            logger.info("ChangePublisher connected to Redis at %s", self._redis_url)
        except RedisError as exc:
            raise PublisherError(f"Cannot connect to Redis: {exc}") from exc

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("ChangePublisher disconnected from Redis")

    async def __aenter__(self) -> ChangePublisher:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # ── Publish ───────────────────────────────────────────────────────────────

    async def publish(self, payload: ChangePayload) -> int:
        """
        Publish one change to its table topic.

        Returns:
            Number of subscribers that received the message.

        Raises:
            PublisherError: If not connected or Redis returns an error.
            SerializationError: If the payload cannot be serialized.
        """
        if self._redis is None:
            raise PublisherError("ChangePublisher is not connected — call connect() first")

        topic = topic_for(payload.schema, payload.table)
        message = serialize(payload)
        try:
            deliveries: int = await self._redis.publish(topic, message)
        except RedisError as exc:
            raise PublisherError(f"Redis publish failed on topic '{topic}'") from exc

        logger.debug("Published %s to '%s', reached %d subscriber(s)",
                     payload.event_type.value, topic, deliveries)
        return deliveries
